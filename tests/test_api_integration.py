"""
API Integration Tests
End-to-end tests through the REST endpoints
"""
import inspect
from decimal import Decimal

from fastapi.testclient import TestClient

from steeltrack.api.v1 import imports
from steeltrack.core.config import settings

API = "/api/v1"

LOT = {
    "entry_date": "2024-01-05",
    "serial_number": "100",
    "steel_type": "E",
    "weight": "500",
    "lot_code": "L1",
    "quality": "Soft",
    "dimensions": [{"thickness": "1.5", "width": 120}],
}

INVENTORY_CSV = (
    "Entry Date,S.No,Type,Dimensions,Weight,Coating,Specifications,Item Form,LOT,Quality,Balance\n"
    "05/01/2024,200,GA,2×240,750,,,Sheet,L2,Hard,750\n"
)


def _create_lot(client: TestClient, headers, **overrides):
    response = client.post(f"{API}/inventory/", json={**LOT, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestSystemEndpoints:

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_info(self, client: TestClient):
        assert client.get("/info").json()["api_version"] == "v1"


class TestAuthEndpoints:

    def test_status_and_setup(self, client: TestClient):
        assert client.get(f"{API}/auth/status").json() == {"configured": False}

        assert client.post(f"{API}/auth/setup", json={"access_code": "1234"}).status_code == 201
        assert client.get(f"{API}/auth/status").json() == {"configured": True}
        assert client.post(f"{API}/auth/setup", json={"access_code": "5678"}).status_code == 409

    def test_requires_token(self, client: TestClient):
        assert client.get(f"{API}/inventory/").status_code in (401, 403)

    def test_bad_login(self, client: TestClient, auth_headers):
        response = client.post(f"{API}/auth/login", json={"access_code": "9999"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid access code"

    def test_logout_invalidates_token(self, client: TestClient, auth_headers):
        assert client.post(f"{API}/auth/logout", headers=auth_headers).status_code == 200
        assert client.get(f"{API}/inventory/", headers=auth_headers).status_code == 401

    def test_change_code(self, client: TestClient, auth_headers):
        _create_lot(client, auth_headers)

        response = client.post(
            f"{API}/auth/change-code",
            json={"current_code": "1234", "new_code": "5678"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["lots_updated"] == 1
        assert client.get(f"{API}/inventory/", headers=auth_headers).status_code == 401

        new_headers = {"Authorization": f"Bearer {body['access_token']}"}
        lots = client.get(f"{API}/inventory/", headers=new_headers).json()
        assert lots[0]["serial_number"] == "100"
        assert client.post(f"{API}/auth/login", json={"access_code": "1234"}).status_code == 401


class TestInventoryEndpoints:

    def test_lot_lifecycle(self, client: TestClient, auth_headers):
        lot = _create_lot(client, auth_headers)
        assert Decimal(lot["balance"]) == Decimal("500")
        assert lot["dimensions"][0]["text"] == "1.50×120"

        response = client.put(
            f"{API}/inventory/{lot['id']}", json={"coating": "Z275"}, headers=auth_headers
        )
        assert response.json()["coating"] == "Z275"

        assert client.get(f"{API}/inventory/{lot['id']}", headers=auth_headers).status_code == 200
        assert client.delete(f"{API}/inventory/{lot['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"{API}/inventory/{lot['id']}", headers=auth_headers).status_code == 404

    def test_duplicate_serial_conflict(self, client: TestClient, auth_headers):
        _create_lot(client, auth_headers)

        response = client.post(f"{API}/inventory/", json=LOT, headers=auth_headers)

        assert response.status_code == 409

    def test_lot_needs_a_dimension(self, client: TestClient, auth_headers):
        response = client.post(
            f"{API}/inventory/", json={**LOT, "dimensions": []}, headers=auth_headers
        )
        assert response.status_code == 422

    def test_sales_and_balance(self, client: TestClient, auth_headers):
        lot = _create_lot(client, auth_headers)
        sale = {"customer_name": "ACME", "quantity_sold": "200", "form": "Coil", "sale_date": "2024-02-01"}

        response = client.post(f"{API}/inventory/{lot['id']}/sales", json=sale, headers=auth_headers)
        assert response.status_code == 201
        sale_id = response.json()["id"]

        balance = client.get(f"{API}/inventory/{lot['id']}/balance", headers=auth_headers).json()
        assert Decimal(balance["balance"]) == Decimal("300")

        response = client.post(
            f"{API}/inventory/{lot['id']}/sales",
            json={**sale, "quantity_sold": "400"},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert "exceeds remaining weight 300" in response.json()["detail"]

        response = client.put(f"{API}/sales/{sale_id}", json={"quantity_sold": "250"}, headers=auth_headers)
        assert Decimal(response.json()["quantity_sold"]) == Decimal("250")

        sales = client.get(f"{API}/inventory/{lot['id']}/sales", headers=auth_headers).json()
        assert len(sales) == 1
        assert client.delete(f"{API}/sales/{sale_id}", headers=auth_headers).status_code == 204

    def test_dc_and_completion(self, client: TestClient, auth_headers):
        first = _create_lot(client, auth_headers)
        second = _create_lot(client, auth_headers, serial_number="101", customer_name="Old Customer")

        response = client.put(f"{API}/inventory/{first['id']}/dc", json={"at_dc": True}, headers=auth_headers)
        assert response.json()["at_dc"] is True

        response = client.post(
            f"{API}/inventory/dc/bulk",
            json={"stock_lot_ids": [first["id"], second["id"]], "at_dc": True},
            headers=auth_headers,
        )
        assert response.status_code == 409

        response = client.put(
            f"{API}/inventory/lots/L1/completion", json={"completed": True}, headers=auth_headers
        )
        assert response.json()["updated"] == 2

        lots = client.get(f"{API}/inventory/", params={"completed": True}, headers=auth_headers).json()
        assert len(lots) == 2

    def test_lot_at_dc_rejects_changes(self, client: TestClient, auth_headers):
        lot = _create_lot(client, auth_headers)
        client.put(f"{API}/inventory/{lot['id']}/dc", json={"at_dc": True}, headers=auth_headers)

        response = client.post(
            f"{API}/inventory/{lot['id']}/sales",
            json={"customer_name": "ACME", "quantity_sold": "10", "sale_date": "2024-02-01"},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert "at DC" in response.json()["detail"]

        response = client.put(f"{API}/inventory/{lot['id']}", json={"lot_code": "ZZ"}, headers=auth_headers)
        assert response.status_code == 409

        client.put(f"{API}/inventory/{lot['id']}/dc", json={"at_dc": False}, headers=auth_headers)
        response = client.put(f"{API}/inventory/{lot['id']}", json={"lot_code": "ZZ"}, headers=auth_headers)
        assert response.status_code == 200

    def test_dimensions_endpoints(self, client: TestClient, auth_headers):
        lot = _create_lot(client, auth_headers)

        response = client.post(
            f"{API}/inventory/{lot['id']}/dimensions",
            json={"thickness": "2", "width": 240},
            headers=auth_headers,
        )
        assert response.status_code == 201
        dimension_id = response.json()["id"]

        url = f"{API}/inventory/{lot['id']}/dimensions/{dimension_id}"
        assert client.delete(url, headers=auth_headers).status_code == 204
        only = lot["dimensions"][0]["id"]
        response = client.delete(f"{API}/inventory/{lot['id']}/dimensions/{only}", headers=auth_headers)
        assert response.status_code == 409


class TestImportEndpoints:

    def test_inventory_upload(self, client: TestClient, auth_headers):
        files = {"file": ("inventory.csv", INVENTORY_CSV.encode("utf-8"), "text/csv")}

        response = client.post(f"{API}/imports/inventory", files=files, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["inventory_imported"] == 1

        response = client.post(f"{API}/imports/inventory", files=files, headers=auth_headers)
        assert response.json()["skipped"] == 1

    def test_bad_header_upload(self, client: TestClient, auth_headers):
        files = {"file": ("sales.csv", b"Date,Qty\n1,2\n", "text/csv")}

        response = client.post(f"{API}/imports/sales", files=files, headers=auth_headers)

        assert response.status_code == 400
        assert "Dashboard format" in response.json()["detail"]

    def test_wrong_extension(self, client: TestClient, auth_headers):
        files = {"file": ("inventory.xlsx", b"x", "application/octet-stream")}

        response = client.post(f"{API}/imports/combined", files=files, headers=auth_headers)

        assert response.status_code == 400

    def test_oversized_upload(self, client: TestClient, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 16)
        files = {"file": ("inventory.csv", INVENTORY_CSV.encode("utf-8"), "text/csv")}

        response = client.post(f"{API}/imports/inventory", files=files, headers=auth_headers)

        assert response.status_code == 413

    def test_import_handlers_are_synchronous(self):
        # Sync handlers run in the worker pool and leave the event loop free
        for route in imports.router.routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path

    def test_encryption_endpoints(self, client: TestClient, auth_headers):
        _create_lot(client, auth_headers)

        status = client.get(f"{API}/system/encryption-status", headers=auth_headers).json()
        assert status["total_lots"] == 1
        assert status["has_plaintext_data"] is False

        response = client.post(f"{API}/system/encrypt-legacy", headers=auth_headers)
        assert response.json()["values_encrypted"] == 0
