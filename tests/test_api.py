import base64

import pytest
from fastapi.testclient import TestClient

from backend.app.container import build_container
from backend.app.main import create_app
from backend.services.sheets_ledger import read_ledger_rows
from expense_flow.config import AppConfig


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database={"backend": "memory"},
        ledger={"workbook_path": tmp_path / "ledger.xlsx"},
        receipts={"upload_dir": tmp_path / "receipts", "public_base_url": "http://testserver/receipts"},
    )


@pytest.fixture
def client(config):
    with TestClient(create_app(build_container(config))) as test_client:
        yield test_client


def _auth(client, email: str) -> dict:
    response = client.post("/api/auth/login", json={"email": email})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


LUNCH = {
    "description": "Team lunch",
    "category": "Meals & Entertainment",
    "expense_date": "2025-06-20",
    "amount": "156.50",
}


def test_submit_and_approve_round(client, config):
    sarah = _auth(client, "sarah@agency.com")
    manager = _auth(client, "manager@agency.com")

    created = client.post("/api/expenses", json=LUNCH, headers=sarah)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "pending"
    assert body["formatted_amount"] == "$156.50"
    assert body["employee_name"] == "Sarah Miller"
    assert body["approved_by"] is None

    decided = client.patch(
        f"/api/expenses/{body['id']}/status",
        json={"status": "approved", "approval_note": "Approved, within policy"},
        headers=manager,
    )
    assert decided.status_code == 200
    assert decided.json()["approved_by_name"] == "Finance Manager"

    again = client.patch(f"/api/expenses/{body['id']}/status", json={"status": "rejected"}, headers=manager)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_DECIDED"

    fetched = client.get(f"/api/expenses/{body['id']}", headers=sarah).json()
    assert fetched["status"] == "approved"
    assert fetched["sheets_row_number"] == 2
    assert read_ledger_rows(config.ledger.workbook_path)[0]["status"] == "approved"

    stats = client.get("/api/stats", headers=sarah).json()
    assert stats == {"pending_count": 0, "approved_count": 1, "rejected_count": 0, "total_amount": "$156.50"}


def test_auth_and_permission_errors(client):
    assert client.get("/api/expenses").status_code == 401
    assert client.get("/api/expenses", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "nobody@agency.com"}).status_code == 401

    sarah = _auth(client, "sarah@agency.com")
    expense_id = client.post("/api/expenses", json=LUNCH, headers=sarah).json()["id"]

    denied = client.patch(f"/api/expenses/{expense_id}/status", json={"status": "approved"}, headers=sarah)
    assert denied.status_code == 403
    assert client.post("/api/admin/sync-sheets", headers=sarah).status_code == 403
    assert client.get("/api/expenses/9999", headers=sarah).status_code == 404


def test_validation_errors_name_the_field(client):
    sarah = _auth(client, "sarah@agency.com")

    response = client.post("/api/expenses", json={**LUNCH, "amount": "0"}, headers=sarah)

    assert response.status_code == 400
    assert response.json()["error"]["details"]["field"] == "amount"
    assert client.get("/api/expenses", headers=sarah).json() == []
    assert client.get("/api/expenses?status=archived", headers=sarah).status_code == 400


def test_register_then_list_own_expenses(client):
    registered = client.post(
        "/api/auth/register", json={"email": "dana@agency.com", "name": "Dana Lee", "department": "Sales"}
    )
    assert registered.status_code == 200
    dana = {"Authorization": f"Bearer {registered.json()['token']}"}
    dana_id = registered.json()["user"]["id"]
    client.post("/api/expenses", json=LUNCH, headers=dana)
    client.post("/api/expenses", json=LUNCH, headers=_auth(client, "sarah@agency.com"))

    me = client.get("/api/auth/me", headers=dana).json()
    own = client.get(f"/api/expenses?employee={dana_id}", headers=dana).json()

    assert me["role"] == "employee"
    assert [e["employee_id"] for e in own] == [dana_id]
    assert client.post("/api/auth/register", json={"email": "dana@agency.com", "name": "Dana"}).status_code == 409

    assert client.post("/api/auth/logout", headers=dana).status_code == 200
    assert client.get("/api/auth/me", headers=dana).status_code == 401


def test_receipt_upload_is_served_back(client):
    sarah = _auth(client, "sarah@agency.com")
    payload = {
        **LUNCH,
        "receipt_file_name": "lunch.pdf",
        "receipt_file_type": "application/pdf",
        "receipt_file_data": base64.b64encode(b"%PDF-1.7 receipt").decode("ascii"),
    }

    body = client.post("/api/expenses", json=payload, headers=sarah).json()
    stored_name = body["receipt_url"].rsplit("/", 1)[-1]
    served = client.get(f"/receipts/{stored_name}")

    assert body["receipt_file_name"] == "lunch.pdf"
    assert served.status_code == 200
    assert served.content == b"%PDF-1.7 receipt"
    assert client.get("/receipts/missing.pdf").status_code == 404


def test_admin_operations_and_mileage_rate(client):
    admin = _auth(client, "admin@agency.com")

    assert client.get("/api/mileage-rate", headers=admin).json() == {"rate": "0.68"}
    synced = client.post("/api/admin/sync-sheets", headers=admin).json()
    resent = client.post("/api/admin/resend-notifications", headers=admin).json()
    emails = client.post("/api/admin/sync-emails", headers=admin).json()

    assert synced["message"] == "Sheets sync completed"
    assert synced["appended"] == []
    assert resent["sent"] == []
    assert emails["created"] == []
    assert client.get("/health").json() == {"status": "ok"}
