from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import PASSWORD, auth_headers
from staffdesk.config import get_settings
from staffdesk.main import app
from staffdesk.seed import seed_root_user
from staffdesk.services.auth import decode_token


def login(client: TestClient, username: str, password: str):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_login_returns_bearer_token(admin):
    client = TestClient(app)
    response = login(client, "admin", PASSWORD)
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "ADMIN"
    assert body["user"]["organization_id"] == admin.organization_id

    payload = decode_token(body["access_token"])
    assert payload["sub"] == str(admin.id)
    assert payload["org"] == admin.organization_id

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "admin"


def test_login_rejects_wrong_password(admin):
    client = TestClient(app)
    assert login(client, "admin", "wrong-password").status_code == 401
    assert login(client, "nobody", PASSWORD).status_code == 401


def test_disabled_account_cannot_use_token(db, admin):
    headers = auth_headers(admin)
    admin.is_active = False
    db.commit()
    client = TestClient(app)
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert login(client, "admin", PASSWORD).status_code == 401


def test_employee_directory_is_org_scoped(admin, other_admin, staff_user, employees):
    client = TestClient(app)
    mine = client.get("/api/employees", headers=auth_headers(admin)).json()
    assert sorted(e["full_name"] for e in mine) == ["Ahmed Khan", "Jane Doe", "John Smith"]
    assert client.get("/api/employees", headers=auth_headers(other_admin)).json() == []

    created = client.post(
        "/api/employees",
        headers=auth_headers(admin),
        json={"full_name": "Priya Patel", "work_email": "priya@landmarkhotel.co.uk", "department": "Banqueting"},
    )
    assert created.status_code == 201, created.text
    assert created.json()["department_id"] is not None

    forbidden = client.post("/api/employees", headers=auth_headers(staff_user), json={"full_name": "X Y"})
    assert forbidden.status_code == 403


def test_seed_root_user_only_when_password_configured(db, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "root_password", "")
    assert seed_root_user(db) is None

    monkeypatch.setattr(settings, "root_password", "root-password-1")
    user = seed_root_user(db)
    assert user.role.value == "ROOT"
    assert user.organization_id is None
    assert seed_root_user(db).id == user.id
