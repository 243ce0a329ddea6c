"""
SteelTrack Database Configuration
SQLAlchemy setup for the embedded SQLite store
"""
import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

logger = logging.getLogger(__name__)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections get foreign key enforcement and transactional DDL:
    pysqlite's own transaction handling is switched off and SQLAlchemy
    emits BEGIN itself, so schema rewrites can be rolled back.
    """
    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    db_engine = create_engine(url, echo=echo, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(db_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(db_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return db_engine


def ensure_database_directory(url: str) -> None:
    """Create the parent directory of a file-based SQLite database"""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


engine = create_db_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Metadata with naming convention for constraints
Base = declarative_base(metadata=MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}))


def get_db() -> Generator:
    """
    Dependency function to get database session

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db(db_engine: Engine = None):
    """
    Bring the database schema up to date

    Runs every pending migration against the engine (module engine by
    default) and returns the migration report.
    """
    from steeltrack.services.schema_migrator import ensure_schema

    db_engine = db_engine or engine
    ensure_database_directory(str(db_engine.url))
    report = ensure_schema(db_engine)
    logger.info(
        f"Database schema ready: {len(report.applied)} migration(s) applied, "
        f"{len(report.rewritten_tables)} table(s) rewritten"
    )
    return report


def check_db_connection(db_engine: Engine = None) -> bool:
    """
    Check if database connection is working

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with (db_engine or engine).connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
