# Staff authentication: signup roles, login, profile, and bearer header handling.
from __future__ import annotations

from fastapi.testclient import TestClient

from rentalcore import models
from rentalcore.db import SessionLocal

from conftest import auth_headers

SIGNUP = {
    "email": "Manager@Example.com",
    "password": "changeme123",
    "first_name": "Mina",
    "last_name": "Park",
    "role": "PROPERTY_MANAGER",
}


def test_signup_login_me(client: TestClient):
    r = client.post("/auth/signup", json=SIGNUP)
    assert r.status_code == 201, r.text
    assert r.json()["user"]["email"] == "manager@example.com"
    assert r.json()["token_type"] == "bearer"

    r = client.post("/auth/login", json={"email": "manager@example.com", "password": "changeme123"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = client.get("/auth/me", headers=auth_headers(token))
    assert r.status_code == 200
    assert r.json()["role"] == "PROPERTY_MANAGER"


def test_admin_cannot_sign_up(client: TestClient):
    r = client.post("/auth/signup", json={**SIGNUP, "role": "ADMIN"})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "validation_error"


def test_duplicate_email_conflicts(client: TestClient):
    assert client.post("/auth/signup", json=SIGNUP).status_code == 201
    r = client.post("/auth/signup", json={**SIGNUP, "email": "manager@example.com"})
    assert r.status_code == 409


def test_wrong_password_is_rejected(client: TestClient):
    client.post("/auth/signup", json=SIGNUP)
    r = client.post("/auth/login", json={"email": "manager@example.com", "password": "wrongpass1"})
    assert r.status_code == 401
    assert r.json()["detail"] == {"error": "authentication_required", "message": "Invalid credentials"}


def test_missing_and_malformed_headers(client: TestClient):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.json()["detail"]["error"] == "authentication_required"

    r = client.get("/auth/me", headers={"Authorization": "Token abc"})
    assert r.status_code == 401
    assert r.json()["detail"]["error"] == "invalid_token"


def test_blocked_user_is_denied(client: TestClient):
    token = client.post("/auth/signup", json=SIGNUP).json()["access_token"]
    db = SessionLocal()
    try:
        user = db.query(models.User).filter(models.User.email == "manager@example.com").one()
        user.is_blocked = True
        db.commit()
    finally:
        db.close()

    r = client.get("/auth/me", headers=auth_headers(token))
    assert r.status_code == 403


def test_create_admin_script_then_login(client: TestClient):
    import importlib.util
    import os

    path = os.path.join(os.path.dirname(__file__), "..", "scripts", "create_admin.py")
    spec = importlib.util.spec_from_file_location("create_admin", path)
    script = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(script)

    assert script.main(["--email", "Root@Example.com", "--password", "s3cret-pass"]) == 0
    r = client.post("/auth/login", json={"email": "root@example.com", "password": "s3cret-pass"})
    assert r.status_code == 200, r.text
    assert r.json()["user"]["role"] == "ADMIN"
