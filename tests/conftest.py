"""
Test Configuration and Fixtures
Shared testing infrastructure for SteelTrack
"""
import os
import tempfile
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Generator

# Settings are read at import time; point the application at a scratch
# database and keep key derivation fast before anything imports steeltrack.
_SCRATCH_DIR = tempfile.mkdtemp(prefix="steeltrack-tests-")
os.environ.setdefault("STEELTRACK_DATABASE_URL", f"sqlite:///{_SCRATCH_DIR}/app.db")
os.environ.setdefault("STEELTRACK_LOG_DIR", os.path.join(_SCRATCH_DIR, "logs"))
os.environ.setdefault("STEELTRACK_KDF_ITERATIONS", "1000")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from steeltrack.core.crypto import FieldCipher
from steeltrack.core.database import create_db_engine, get_db
from steeltrack.core.security import AccessContext, session_registry
from steeltrack.main import app
from steeltrack.models import StockLot
from steeltrack.services.inventory_service import InventoryService
from steeltrack.services.schema_migrator import ensure_schema

TEST_ACCESS_CODE = "1234"


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite engine with the schema migrated"""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    ensure_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cipher() -> FieldCipher:
    return FieldCipher(iterations=1000)


@pytest.fixture
def context(cipher) -> AccessContext:
    return AccessContext(TEST_ACCESS_CODE, cipher)


@pytest.fixture
def make_lot(db_session: Session, context: AccessContext) -> Callable[..., StockLot]:
    """Factory creating an encrypted stock lot with one 1.50x120 dimension"""
    def _make(serial_number: str = "100", weight: str = "500", **overrides: Any) -> StockLot:
        values: Dict[str, Any] = {
            "entry_date": date(2024, 1, 5),
            "serial_number": serial_number,
            "steel_type": "E",
            "weight": Decimal(weight),
            "lot_code": "L1",
            "quality": "Soft",
        }
        dimensions = overrides.pop("dimensions", [(Decimal("1.50"), 120)])
        values.update(overrides)
        return InventoryService(db_session, context).create_lot(values, dimensions)
    return _make


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    session_registry.close_all()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    session_registry.close_all()


@pytest.fixture
def auth_headers(client: TestClient) -> Dict[str, str]:
    """Configure the access code and log in"""
    response = client.post("/api/v1/auth/setup", json={"access_code": TEST_ACCESS_CODE})
    assert response.status_code == 201

    response = client.post("/api/v1/auth/login", json={"access_code": TEST_ACCESS_CODE})
    assert response.status_code == 200

    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
