# Pytest configuration for backend API tests.
# Forces a local SQLite DB, disables Redis and the status sweeper thread, and wires JWT secrets for deterministic runs.
import os
import tempfile
from datetime import timedelta
from typing import Iterator, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, predictable JWT secret
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("RENTALCORE_JWT_SECRET", "test-secret")
os.environ.setdefault("STATUS_SWEEP_SECONDS", "0")
os.environ.setdefault("DOCUMENTS_DIR", tempfile.mkdtemp(prefix="rentalcore-docs-"))

import sys
# Ensure the repo root is on sys.path so 'rentalcore' resolves when running pytest from the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from rentalcore.main import app  # noqa: E402
from rentalcore.db import Base, SessionLocal, engine  # noqa: E402
from rentalcore import models  # noqa: E402
from rentalcore.clock import utcnow  # noqa: E402
from rentalcore.security import create_access_token  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test.

    Simple but effective for this small suite; avoids transactional complexity.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """
    FastAPI TestClient bound to the application for HTTP-level tests.
    """
    with TestClient(app) as c:
        yield c


def iso_days(days: float) -> str:
    """ISO-8601 UTC timestamp `days` from now (negative for the past)."""
    return (utcnow() + timedelta(days=days)).isoformat()


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class Seed:
    """
    Builds fixtures through the API the way a client would.

    Users are inserted directly since ADMIN accounts cannot sign up.
    """

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: str, email: Optional[str] = None) -> Tuple[dict, int]:
        n = self._next()
        db = SessionLocal()
        try:
            user = models.User(
                email=email or f"{role.lower()}{n}@example.com",
                password_hash="not-a-real-hash",
                role=role,
                first_name=role.title(),
                last_name=str(n),
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return auth_headers(create_access_token(user=user)), user.id
        finally:
            db.close()

    def property(self, headers: dict, owner_id: int, **extra) -> dict:
        body = {"name": f"Unit {self._next()}", "owner_id": owner_id}
        body.update(extra)
        r = self.client.post("/api/v1/properties", headers=headers, json=body)
        assert r.status_code == 201, r.text
        return r.json()

    def tenant(self, headers: dict, **extra) -> dict:
        n = self._next()
        body = {"national_id": f"NID{n:05d}", "first_name": "Tenant", "last_name": str(n)}
        body.update(extra)
        r = self.client.post("/api/v1/tenants", headers=headers, json=body)
        assert r.status_code == 201, r.text
        return r.json()

    def contract_body(self, property_id: int, tenant_id: int, start: float = -1, end: float = 30, **extra) -> dict:
        body = {
            "property_id": property_id,
            "tenant_id": tenant_id,
            "price": 1200,
            "start_date": iso_days(start),
            "end_date": iso_days(end),
            "payment_frequency": "MONTHLY",
        }
        body.update(extra)
        return body

    def contract(self, headers: dict, property_id: int, tenant_id: int, start: float = -1, end: float = 30) -> dict:
        r = self.client.post(
            "/api/v1/contracts",
            headers=headers,
            json=self.contract_body(property_id, tenant_id, start, end),
        )
        assert r.status_code == 201, r.text
        return r.json()

    def property_status(self, headers: dict, property_id: int) -> str:
        r = self.client.get(f"/api/v1/properties/{property_id}", headers=headers)
        assert r.status_code == 200, r.text
        return r.json()["status"]


@pytest.fixture()
def seed(client: TestClient) -> Seed:
    return Seed(client)
