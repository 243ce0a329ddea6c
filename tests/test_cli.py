"""
Tests for the administration command line
"""
import json
import logging

import pytest
from sqlalchemy.orm import sessionmaker

from steeltrack import cli
from steeltrack.core.database import init_db

INVENTORY_CSV = (
    "Entry Date,S.No,Type,Dimensions,Weight,Coating,Specifications,Item Form,LOT,Quality,Balance\n"
    "05/01/2024,200,GA,2×240,750,,,Sheet,L2,Hard,750\n"
)


@pytest.fixture(autouse=True)
def cli_database(engine, monkeypatch):
    """Point the command line at the per-test database"""
    monkeypatch.setattr(cli, "init_db", lambda: init_db(engine))
    monkeypatch.setattr(
        cli, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )
    yield
    logging.getLogger("steeltrack").handlers.clear()


def _run(capsys, *argv):
    code = cli.main(["--log-level", "WARNING", *argv])
    return code, capsys.readouterr().out


class TestCommandLine:

    def test_migrate(self, capsys):
        code, out = _run(capsys, "migrate")

        assert code == 0
        assert "Applied: none" in out

    def test_setup_code_then_status(self, capsys):
        assert _run(capsys, "--code", "1234", "setup-code") == (0, "Access code configured\n")

        code, out = _run(capsys, "--code", "1234", "status")

        assert code == 0
        assert json.loads(out)["total_lots"] == 0

    def test_wrong_code_is_refused(self, capsys):
        _run(capsys, "--code", "1234", "setup-code")

        code, _ = _run(capsys, "--code", "9999", "status")

        assert code == 1

    def test_import_file_and_encrypt_legacy(self, capsys, tmp_path):
        report = tmp_path / "inventory.csv"
        report.write_text(INVENTORY_CSV, encoding="utf-8")
        _run(capsys, "--code", "1234", "setup-code")

        code, out = _run(capsys, "--code", "1234", "import", "inventory", str(report))
        assert code == 0
        assert json.loads(out)["inventory_imported"] == 1

        code, out = _run(capsys, "--code", "1234", "encrypt-legacy")
        assert code == 0
        assert json.loads(out)["values_encrypted"] == 0

    def test_unknown_import_kind(self, capsys):
        with pytest.raises(SystemExit):
            cli.main(["import", "stock", "file.csv"])
