"""
Schema Migrator
Versioned, forward-only schema migrations applied at startup
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.schema import CreateTable

from steeltrack.core.database import Base
from steeltrack.core.exceptions import MigrationError
from steeltrack.models import AccessCredential, Dimension, Sale, SchemaMigration, StockLot

logger = logging.getLogger("steeltrack.database")

_CHECK_RE = re.compile(r"\bCHECK\b", re.IGNORECASE)
_FRACTIONAL_TYPES = ("REAL", "FLOA", "DOUB", "NUM", "DEC")


@dataclass
class MigrationReport:
    """Outcome of one ensure_schema call"""
    applied: List[str] = field(default_factory=list)
    rewritten_tables: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


@dataclass
class Migration:
    version: int
    name: str
    apply: Callable[[Engine, MigrationReport], None]
    critical: bool = True


def table_sql(conn: Connection, table_name: str) -> Optional[str]:
    """Stored CREATE TABLE text of a table, None when the table is absent"""
    return conn.exec_driver_sql(
        "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)
    ).scalar()


def table_columns(conn: Connection, table_name: str) -> Dict[str, str]:
    """Column name -> declared type"""
    rows = conn.exec_driver_sql(f'PRAGMA table_info("{table_name}")').fetchall()
    return {row[1]: (row[2] or "") for row in rows}


def has_check_constraint(conn: Connection, table_name: str) -> bool:
    sql = table_sql(conn, table_name)
    return bool(sql) and bool(_CHECK_RE.search(sql))


def rewrite_table(engine: Engine, model_table: Table, expressions: Optional[Dict[str, str]] = None):
    """
    Rebuild a table from its model definition and copy the rows across.

    Creates a shadow table, copies the columns both tables share, drops the
    original and renames the shadow, all in one transaction. Columns the
    old table lacks take their defaults. Foreign key enforcement is off for
    the duration so dropping the original does not cascade into child rows.
    """
    name = model_table.name
    shadow_name = f"{name}__shadow"
    expressions = expressions or {}

    # Referenced tables must be present in the metadata to compile foreign keys
    shadow_metadata = MetaData()
    for table in Base.metadata.sorted_tables:
        if table is not model_table:
            table.to_metadata(shadow_metadata)
    shadow = model_table.to_metadata(shadow_metadata, name=shadow_name)

    with engine.connect() as conn:
        raw = conn.connection.driver_connection
        raw.execute("PRAGMA foreign_keys=OFF")
        try:
            with conn.begin():
                existing = table_columns(conn, name)
                conn.exec_driver_sql(f'DROP TABLE IF EXISTS "{shadow_name}"')
                conn.execute(CreateTable(shadow))

                columns = [
                    c for c in model_table.columns if c.name in existing or c.name in expressions
                ]
                targets = ", ".join(f'"{c.name}"' for c in columns)
                sources = ", ".join(_copy_expression(c, expressions) for c in columns)
                conn.exec_driver_sql(
                    f'INSERT INTO "{shadow_name}" ({targets}) SELECT {sources} FROM "{name}"'
                )
                conn.exec_driver_sql(f'DROP TABLE "{name}"')
                conn.exec_driver_sql(f'ALTER TABLE "{shadow_name}" RENAME TO "{name}"')
                for index in model_table.indexes:
                    index.create(conn, checkfirst=True)

                violations = conn.exec_driver_sql(f'PRAGMA foreign_key_check("{name}")').fetchall()
                if violations:
                    raise MigrationError(
                        f"Rewrite of {name} left {len(violations)} row(s) with broken references"
                    )
        finally:
            raw.execute("PRAGMA foreign_keys=ON")

    logger.info(f"Rewrote table {name}")


def _copy_expression(column, expressions: Dict[str, str]) -> str:
    if column.name in expressions:
        return expressions[column.name]
    if not column.nullable and column.server_default is not None:
        return f'COALESCE("{column.name}", {column.server_default.arg})'
    return f'"{column.name}"'


# Migrations

def create_base_tables(engine: Engine, report: MigrationReport):
    tables = [t.__table__ for t in (AccessCredential, StockLot, Dimension, Sale)]
    Base.metadata.create_all(bind=engine, tables=tables, checkfirst=True)


def add_descriptor_columns(engine: Engine, report: MigrationReport):
    wanted = [
        (StockLot.__table__, "coating"),
        (StockLot.__table__, "specifications"),
        (StockLot.__table__, "form"),
        (Sale.__table__, "dimensions_snapshot"),
    ]
    for table, column_name in wanted:
        column = table.c[column_name]
        with engine.connect() as conn:
            if column_name in table_columns(conn, table.name):
                continue
        ddl_type = column.type.compile(dialect=engine.dialect)
        try:
            with engine.begin() as conn:
                conn.exec_driver_sql(
                    f'ALTER TABLE "{table.name}" ADD COLUMN "{column_name}" {ddl_type}'
                )
            logger.info(f"Added column {table.name}.{column_name}")
        except OperationalError as e:
            if "duplicate column" not in str(e).lower():
                raise
            logger.debug(f"Column {table.name}.{column_name} already exists")

    copy_grade_to_coating(engine)


def copy_grade_to_coating(engine: Engine) -> int:
    """Fill empty coating values from the legacy grade column, when present"""
    table = StockLot.__table__.name
    with engine.connect() as conn:
        columns = table_columns(conn, table)
    if "grade" not in columns or "coating" not in columns:
        return 0
    with engine.begin() as conn:
        copied = conn.exec_driver_sql(
            f'UPDATE "{table}" SET "coating" = "grade" '
            f'WHERE "coating" IS NULL AND "grade" IS NOT NULL'
        ).rowcount
    if copied:
        logger.info(f"Copied grade into coating on {copied} row(s) of {table}")
    return copied


def _renamed_columns(engine: Engine, model_table: Table) -> Dict[str, str]:
    """Copy expressions for columns whose values live under an older name"""
    if model_table.name != StockLot.__table__.name:
        return {}
    with engine.connect() as conn:
        columns = table_columns(conn, model_table.name)
    if "grade" not in columns:
        return {}
    if "coating" in columns:
        return {"coating": 'COALESCE("coating", "grade")'}
    return {"coating": '"grade"'}


def _drop_check_constraints(model_table: Table) -> Callable[[Engine, MigrationReport], None]:
    def apply(engine: Engine, report: MigrationReport):
        with engine.connect() as conn:
            needs_rewrite = has_check_constraint(conn, model_table.name)
        if needs_rewrite:
            logger.info(f"Legacy CHECK constraints found on {model_table.name}")
            rewrite_table(engine, model_table, _renamed_columns(engine, model_table))
            report.rewritten_tables.append(model_table.name)
    return apply


def width_to_integer(engine: Engine, report: MigrationReport):
    table = Dimension.__table__
    with engine.connect() as conn:
        declared = table_columns(conn, table.name).get("width", "").upper()
    if not any(t in declared for t in _FRACTIONAL_TYPES):
        return
    logger.info(f"Converting {table.name}.width from {declared} to INTEGER")
    rewrite_table(engine, table, {"width": 'CAST(ROUND("width") AS INTEGER)'})
    report.rewritten_tables.append(table.name)


MIGRATIONS: List[Migration] = [
    Migration(1, "create_base_tables", create_base_tables),
    Migration(2, "add_descriptor_columns", add_descriptor_columns),
    Migration(3, "drop_stock_lot_check_constraints", _drop_check_constraints(StockLot.__table__)),
    Migration(4, "drop_sale_check_constraints", _drop_check_constraints(Sale.__table__)),
    # Width precision only affects display, the app stays usable without it
    Migration(5, "dimension_width_to_integer", width_to_integer, critical=False),
]


def applied_versions(engine: Engine) -> Set[int]:
    with engine.connect() as conn:
        return set(conn.execute(select(SchemaMigration.version)).scalars())


def ensure_schema(engine: Engine, migrations: Optional[List[Migration]] = None) -> MigrationReport:
    """
    Apply every pending migration in version order.

    Safe to call on every start. Critical failures are rolled back and
    raised as MigrationError; non-critical ones are logged, left unrecorded
    and retried on the next call.
    """
    report = MigrationReport()
    SchemaMigration.__table__.create(bind=engine, checkfirst=True)
    done = applied_versions(engine)

    for migration in sorted(migrations or MIGRATIONS, key=lambda m: m.version):
        if migration.version in done:
            continue
        try:
            migration.apply(engine, report)
        except Exception as e:
            if migration.critical:
                logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
                raise MigrationError(f"Migration {migration.name} failed: {e}") from e
            logger.warning(f"Non-critical migration {migration.name} failed, will retry: {e}")
            report.failures.append(migration.name)
            continue

        with engine.begin() as conn:
            conn.execute(
                SchemaMigration.__table__.insert().values(
                    version=migration.version, name=migration.name
                )
            )
        report.applied.append(migration.name)
        logger.info(f"Applied migration {migration.version}: {migration.name}")

    return report
