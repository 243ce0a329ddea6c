"""
Tests for the schema migrator
Fresh databases, repeated runs and upgrades of older database files
"""
import pytest
from sqlalchemy import text

from steeltrack.core.database import create_db_engine
from steeltrack.core.exceptions import MigrationError
from steeltrack.services.schema_migrator import (
    MIGRATIONS, Migration, copy_grade_to_coating, create_base_tables, ensure_schema,
    has_check_constraint, table_columns
)

LEGACY_SCHEMA = [
    """
    CREATE TABLE stock_lots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entry_date DATE NOT NULL,
        serial_number TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('E', 'GA', 'GA1', '4', '5', '4N', '4G', 'Scrap', 'Paint', 'Others')),
        weight TEXT NOT NULL,
        lot_code TEXT NOT NULL,
        quality TEXT NOT NULL CHECK (quality IN ('Soft', 'Hard', 'Semi')),
        customer_name TEXT,
        completed BOOLEAN DEFAULT 0,
        at_dc BOOLEAN DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE dimensions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stock_lot_id INTEGER NOT NULL REFERENCES stock_lots(id) ON DELETE CASCADE,
        thickness REAL NOT NULL,
        width REAL NOT NULL
    )
    """,
    """
    CREATE TABLE sales (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stock_lot_id INTEGER NOT NULL REFERENCES stock_lots(id) ON DELETE CASCADE,
        customer_name TEXT NOT NULL,
        quantity_sold TEXT NOT NULL,
        form TEXT CHECK (form IN ('Coil', 'Sheet')),
        sale_date DATE NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE credentials (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        code_hash TEXT NOT NULL UNIQUE,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    INSERT INTO stock_lots (id, entry_date, serial_number, type, weight, lot_code, quality, completed)
    VALUES (1, '2024-01-05', '100', 'E', '500', 'L1', 'Soft', NULL)
    """,
    "INSERT INTO dimensions (id, stock_lot_id, thickness, width) VALUES (1, 1, 1.5, 120.6)",
    """
    INSERT INTO sales (id, stock_lot_id, customer_name, quantity_sold, form, sale_date)
    VALUES (1, 1, 'ACME', '200', 'Coil', '2024-02-01')
    """,
]


@pytest.fixture
def legacy_engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with db_engine.begin() as conn:
        for statement in LEGACY_SCHEMA:
            conn.exec_driver_sql(statement)
    yield db_engine
    db_engine.dispose()


class TestEnsureSchema:

    def test_fresh_database(self, tmp_path):
        db_engine = create_db_engine(f"sqlite:///{tmp_path / 'fresh.db'}")

        report = ensure_schema(db_engine)

        assert report.applied == [m.name for m in MIGRATIONS]
        assert report.rewritten_tables == []
        with db_engine.connect() as conn:
            assert "coating" in table_columns(conn, "stock_lots")
            assert "dimensions_snapshot" in table_columns(conn, "sales")
        db_engine.dispose()

    def test_second_run_is_a_no_op(self, engine):
        report = ensure_schema(engine)

        assert report.applied == []
        assert report.rewritten_tables == []
        assert report.failures == []

    def test_legacy_database_is_upgraded(self, legacy_engine):
        report = ensure_schema(legacy_engine)

        assert set(report.rewritten_tables) == {"stock_lots", "sales", "dimensions"}
        with legacy_engine.connect() as conn:
            assert not has_check_constraint(conn, "stock_lots")
            assert not has_check_constraint(conn, "sales")
            assert "INT" in table_columns(conn, "dimensions")["width"].upper()
            assert "specifications" in table_columns(conn, "stock_lots")

            lot = conn.execute(text("SELECT serial_number, type, completed FROM stock_lots")).one()
            assert lot.serial_number == "100"
            assert lot.type == "E"
            assert lot.completed == 0

            # Child rows survive the parent table rewrite
            assert conn.execute(text("SELECT COUNT(*) FROM sales")).scalar() == 1
            assert conn.execute(text("SELECT width FROM dimensions WHERE id = 1")).scalar() == 121
            assert conn.execute(text("PRAGMA foreign_key_check")).fetchall() == []

    def test_upgraded_database_accepts_ciphertext(self, legacy_engine):
        ensure_schema(legacy_engine)

        with legacy_engine.begin() as conn:
            conn.execute(text(
                "INSERT INTO sales (stock_lot_id, customer_name, quantity_sold, form, sale_date) "
                "VALUES (1, 'enc:v1:AAAA', 'enc:v1:BBBB', NULL, '2024-03-01')"
            ))
            conn.execute(text("UPDATE stock_lots SET type = 'enc:v1:CCCC' WHERE id = 1"))

        assert ensure_schema(legacy_engine).applied == []

    def test_cascade_still_enforced_after_rewrite(self, legacy_engine):
        ensure_schema(legacy_engine)

        with legacy_engine.begin() as conn:
            conn.execute(text("DELETE FROM stock_lots WHERE id = 1"))

        with legacy_engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM sales")).scalar() == 0
            assert conn.execute(text("SELECT COUNT(*) FROM dimensions")).scalar() == 0

    def test_critical_failure_raises(self, tmp_path):
        db_engine = create_db_engine(f"sqlite:///{tmp_path / 'broken.db'}")

        def broken(engine, report):
            raise RuntimeError("disk on fire")

        migrations = [
            Migration(1, "create_base_tables", create_base_tables),
            Migration(2, "broken", broken),
        ]
        with pytest.raises(MigrationError, match="broken"):
            ensure_schema(db_engine, migrations)

        # The migration before the failure stays recorded
        assert ensure_schema(db_engine, migrations[:1]).applied == []
        db_engine.dispose()

    def test_non_critical_failure_is_retried(self, tmp_path):
        db_engine = create_db_engine(f"sqlite:///{tmp_path / 'retry.db'}")
        calls = []

        def flaky(engine, report):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("try again")

        migrations = [Migration(1, "flaky", flaky, critical=False)]

        first = ensure_schema(db_engine, migrations)
        assert first.failures == ["flaky"]
        assert first.applied == []

        second = ensure_schema(db_engine, migrations)
        assert second.applied == ["flaky"]
        assert len(calls) == 2
        db_engine.dispose()


class TestGradeColumn:

    def _legacy_with_grade(self, tmp_path, with_check: bool):
        db_engine = create_db_engine(f"sqlite:///{tmp_path / 'grade.db'}")
        quality = "quality TEXT NOT NULL"
        if with_check:
            quality += " CHECK (quality IN ('Soft', 'Hard', 'Semi'))"
        with db_engine.begin() as conn:
            conn.exec_driver_sql(
                f"""
                CREATE TABLE stock_lots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entry_date DATE NOT NULL,
                    serial_number TEXT NOT NULL,
                    type TEXT NOT NULL,
                    weight TEXT NOT NULL,
                    lot_code TEXT NOT NULL,
                    {quality},
                    grade TEXT,
                    customer_name TEXT,
                    completed BOOLEAN DEFAULT 0,
                    at_dc BOOLEAN DEFAULT 0,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.exec_driver_sql(
                "INSERT INTO stock_lots (id, entry_date, serial_number, type, weight, lot_code, quality, grade) "
                "VALUES (1, '2024-01-05', '100', 'E', '500', 'L1', 'Soft', 'ZincA')"
            )
            conn.exec_driver_sql(
                "INSERT INTO stock_lots (id, entry_date, serial_number, type, weight, lot_code, quality, grade) "
                "VALUES (2, '2024-01-06', '101', 'E', '500', 'L1', 'Soft', NULL)"
            )
        return db_engine

    def test_grade_survives_check_rewrite(self, tmp_path):
        db_engine = self._legacy_with_grade(tmp_path, with_check=True)

        report = ensure_schema(db_engine)

        assert "stock_lots" in report.rewritten_tables
        with db_engine.connect() as conn:
            assert "grade" not in table_columns(conn, "stock_lots")
            rows = conn.execute(text("SELECT id, coating FROM stock_lots ORDER BY id")).all()
        assert [tuple(r) for r in rows] == [(1, "ZincA"), (2, None)]
        db_engine.dispose()

    def test_grade_copied_without_rewrite(self, tmp_path):
        db_engine = self._legacy_with_grade(tmp_path, with_check=False)

        report = ensure_schema(db_engine)

        assert "stock_lots" not in report.rewritten_tables
        with db_engine.connect() as conn:
            coating = conn.execute(text("SELECT coating FROM stock_lots WHERE id = 1")).scalar()
        assert coating == "ZincA"
        db_engine.dispose()

    def test_existing_coating_is_kept(self, tmp_path):
        db_engine = self._legacy_with_grade(tmp_path, with_check=False)
        with db_engine.begin() as conn:
            conn.exec_driver_sql("ALTER TABLE stock_lots ADD COLUMN coating TEXT")
            conn.exec_driver_sql("UPDATE stock_lots SET coating = 'Z275' WHERE id = 1")

        assert copy_grade_to_coating(db_engine) == 0
        with db_engine.connect() as conn:
            coating = conn.execute(text("SELECT coating FROM stock_lots WHERE id = 1")).scalar()
        assert coating == "Z275"
        db_engine.dispose()
