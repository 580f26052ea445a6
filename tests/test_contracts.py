# Contract lifecycle over HTTP: exclusivity, property status derivation, scope checks, and concurrent creation.
from __future__ import annotations

import os
import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from rentalcore import contracts, models, schemas
from rentalcore.clock import utcnow
from rentalcore.contracts import ContractLifecycleManager, get_contract_manager
from rentalcore.documents import ContractDocumentGenerator
from rentalcore.db import SessionLocal
from rentalcore.errors import Conflict
from rentalcore.portal_tokens import get_portal_token_codec
from rentalcore.property_status import PropertyStatusSynchronizer

from conftest import iso_days


def _setup(seed):
    admin, _ = seed.user("ADMIN")
    manager, manager_id = seed.user("PROPERTY_MANAGER")
    owner, owner_id = seed.user("PROPERTY_OWNER")
    prop = seed.property(manager, owner_id)
    tenant = seed.tenant(manager)
    return admin, manager, owner, owner_id, prop, tenant


def test_create_marks_property_rented_and_issues_token(client: TestClient, seed):
    admin, manager, owner, _, prop, tenant = _setup(seed)
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"

    contract = seed.contract(manager, prop["id"], tenant["id"])

    assert contract["is_active"] is True
    assert contract["days_until_expiration"] in (30, 31)
    assert contract["tenant_portal_token"]
    assert contract["tenant_portal_link"].endswith("/tenant-portal/" + contract["tenant_portal_token"])
    assert contract["document_url"].startswith("/uploads/documents/contract_")
    assert seed.property_status(manager, prop["id"]) == "RENTED"

    claims = get_portal_token_codec().verify(contract["tenant_portal_token"])
    assert claims.contract_id == contract["id"]
    assert claims.tenant_national_id == tenant["national_id"]

    # The owner reaches the contract through their property
    r = client.get("/api/v1/contracts", headers=owner)
    assert r.status_code == 200
    assert [c["id"] for c in r.json()] == [contract["id"]]


def test_second_active_contract_is_rejected(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    seed.contract(manager, prop["id"], tenant["id"])
    other = seed.tenant(manager)

    r = client.post("/api/v1/contracts", headers=manager, json=seed.contract_body(prop["id"], other["id"]))
    assert r.status_code == 409
    assert r.json()["detail"] == {"error": "conflict", "message": "Property already has an active contract"}

    r = client.get("/api/v1/contracts", headers=manager, params={"property_id": prop["id"]})
    assert len(r.json()) == 1


def test_historical_contract_does_not_rent_the_property(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    past = seed.contract(manager, prop["id"], tenant["id"], start=-400, end=-35)
    assert past["is_active"] is False
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"

    # An expired lease never blocks a new one
    seed.contract(manager, prop["id"], tenant["id"])
    assert seed.property_status(manager, prop["id"]) == "RENTED"

    r = client.get("/api/v1/contracts", headers=manager, params={"status": "expired"})
    assert [c["id"] for c in r.json()] == [past["id"]]


def test_end_date_must_follow_start_date(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    r = client.post(
        "/api/v1/contracts",
        headers=manager,
        json=seed.contract_body(prop["id"], tenant["id"], start=10, end=5),
    )
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "validation_error"


def test_manager_cannot_lease_a_property_they_do_not_manage(client: TestClient, seed):
    _, manager, owner, owner_id, prop, tenant = _setup(seed)
    other_manager, _ = seed.user("PROPERTY_MANAGER")

    r = client.post("/api/v1/contracts", headers=other_manager, json=seed.contract_body(prop["id"], tenant["id"]))
    assert r.status_code == 403
    assert r.json()["detail"]["error"] == "access_denied"

    # Owners are read-only on contracts
    r = client.post("/api/v1/contracts", headers=owner, json=seed.contract_body(prop["id"], tenant["id"]))
    assert r.status_code == 403

    r = client.post("/api/v1/contracts", headers=manager, json=seed.contract_body(9999, tenant["id"]))
    assert r.status_code == 404
    r = client.post("/api/v1/contracts", headers=manager, json=seed.contract_body(prop["id"], 9999))
    assert r.status_code == 404


def test_update_keeps_token_and_regenerates_document(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    contract = seed.contract(manager, prop["id"], tenant["id"])

    # Moving the end date re-checks exclusivity without counting the contract itself
    r = client.put(
        f"/api/v1/contracts/{contract['id']}",
        headers=manager,
        json={"end_date": iso_days(90), "price": 1500},
    )
    assert r.status_code == 200, r.text
    updated = r.json()
    assert updated["price"] == 1500
    assert updated["tenant_portal_token"] == contract["tenant_portal_token"]
    assert updated["document_url"] != contract["document_url"]
    assert seed.property_status(manager, prop["id"]) == "RENTED"

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"start_date": iso_days(100)})
    assert r.status_code == 400


def test_shortening_a_lease_into_the_past_frees_the_property(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    contract = seed.contract(manager, prop["id"], tenant["id"], start=-60, end=30)

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"end_date": iso_days(-1)})
    assert r.status_code == 200, r.text
    assert r.json()["is_active"] is False
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"


def test_moving_a_contract_checks_the_new_property(client: TestClient, seed):
    _, manager, _, owner_id, prop, tenant = _setup(seed)
    busy = seed.property(manager, owner_id)
    free = seed.property(manager, owner_id)
    contract = seed.contract(manager, prop["id"], tenant["id"])
    seed.contract(manager, busy["id"], seed.tenant(manager)["id"])

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"property_id": busy["id"]})
    assert r.status_code == 409
    assert r.json()["detail"]["message"] == "New property already has an active contract"

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"property_id": free["id"]})
    assert r.status_code == 200, r.text
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"
    assert seed.property_status(manager, free["id"]) == "RENTED"


def test_delete_recounts_and_removes_maintenance(client: TestClient, seed):
    admin, manager, _, _, prop, tenant = _setup(seed)
    contract = seed.contract(manager, prop["id"], tenant["id"])
    r = client.post(
        "/api/v1/maintenance",
        headers=manager,
        json={"contract_id": contract["id"], "title": "Boiler", "description": "No hot water since Monday"},
    )
    assert r.status_code == 201, r.text

    r = client.delete(f"/api/v1/contracts/{contract['id']}", headers=manager)
    assert r.status_code == 200
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"
    assert client.get(f"/api/v1/contracts/{contract['id']}", headers=admin).status_code == 404
    assert client.get("/api/v1/maintenance", headers=admin).json() == []


def test_delete_keeps_rented_while_another_active_contract_exists(seed):
    # Seed an inconsistent pair directly; the recount must still see the survivor
    _, manager, _, _, prop, tenant = _setup(seed)
    first = seed.contract(manager, prop["id"], tenant["id"])
    db = SessionLocal()
    try:
        now = utcnow()
        db.add(
            models.Contract(
                property_id=prop["id"], tenant_id=tenant["id"], price=1, payment_frequency="MONTHLY",
                start_date=now, end_date=now + timedelta(days=5),
            )
        )
        db.commit()
    finally:
        db.close()

    r = seed.client.delete(f"/api/v1/contracts/{first['id']}", headers=manager)
    assert r.status_code == 200
    assert seed.property_status(manager, prop["id"]) == "RENTED"


class _SlowDocuments:
    """Widens the check-then-write window so unsynchronized creates would both pass the check."""

    def generate(self, contract, property_, tenant, owner) -> str:
        time.sleep(0.2)
        return f"/uploads/documents/contract_{contract.id}.html"

    def discard(self, url) -> None:
        pass


def test_concurrent_creates_on_one_property_admit_exactly_one(seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    second_tenant = seed.tenant(manager)
    lifecycle = ContractLifecycleManager(
        status_sync=PropertyStatusSynchronizer(),
        tokens=get_portal_token_codec(),
        documents=_SlowDocuments(),
    )
    now = utcnow()
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(tenant_id: int) -> None:
        data = schemas.ContractCreate(
            property_id=prop["id"],
            tenant_id=tenant_id,
            price=1000,
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
            payment_frequency="MONTHLY",
        )
        db = SessionLocal()
        try:
            barrier.wait()
            lifecycle.create(db, data, "ADMIN", None)
            outcomes.append("created")
        except Conflict:
            outcomes.append("conflict")
        finally:
            db.close()

    threads = [threading.Thread(target=attempt, args=(t,)) for t in (tenant["id"], second_tenant["id"])]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "created"]
    db = SessionLocal()
    try:
        assert db.query(models.Contract).filter(models.Contract.property_id == prop["id"]).count() == 1
        assert db.get(models.Property, prop["id"]).status == "RENTED"
    finally:
        db.close()


def _move_before_locking(monkeypatch, contract_id: int, destination_id: int) -> list:
    """Make the first property lock request wait behind an admin moving the contract elsewhere."""
    real_lock = contracts.property_lock
    moved = []

    @contextmanager
    def lock_after_a_move(property_id, *args, **kwargs):
        if not moved:
            moved.append(property_id)
            db = SessionLocal()
            try:
                get_contract_manager().update(
                    db, contract_id, schemas.ContractUpdate(property_id=destination_id), "ADMIN", None
                )
            finally:
                db.close()
        with real_lock(property_id, *args, **kwargs):
            yield

    monkeypatch.setattr(contracts, "property_lock", lock_after_a_move)
    return moved


def test_delete_follows_a_contract_moved_while_waiting_for_the_lock(client: TestClient, seed, monkeypatch):
    _, manager, _, owner_id, prop, tenant = _setup(seed)
    destination = seed.property(manager, owner_id)
    contract = seed.contract(manager, prop["id"], tenant["id"])
    moved = _move_before_locking(monkeypatch, contract["id"], destination["id"])

    r = client.delete(f"/api/v1/contracts/{contract['id']}", headers=manager)
    assert r.status_code == 200, r.text
    assert moved == [prop["id"]]

    # The property the contract ended up on is the one freed
    assert seed.property_status(manager, destination["id"]) == "AVAILABLE"
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"


def test_update_follows_a_contract_moved_while_waiting_for_the_lock(client: TestClient, seed, monkeypatch):
    _, manager, _, owner_id, prop, tenant = _setup(seed)
    destination = seed.property(manager, owner_id)
    contract = seed.contract(manager, prop["id"], tenant["id"])
    _move_before_locking(monkeypatch, contract["id"], destination["id"])

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"end_date": iso_days(60)})
    assert r.status_code == 200, r.text
    assert r.json()["property_id"] == destination["id"]
    assert seed.property_status(manager, destination["id"]) == "RENTED"
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"


def test_superseded_documents_are_removed(client: TestClient, seed):
    _, manager, _, _, prop, tenant = _setup(seed)
    documents_dir = Path(os.environ["DOCUMENTS_DIR"])
    contract = seed.contract(manager, prop["id"], tenant["id"])
    first = documents_dir / Path(contract["document_url"]).name
    assert first.exists()

    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"price": 1750})
    second = documents_dir / Path(r.json()["document_url"]).name
    assert second.exists()
    assert not first.exists()

    # Untouched document fields keep the current file
    r = client.put(f"/api/v1/contracts/{contract['id']}", headers=manager, json={"price": 1750})
    assert second.exists()

    assert client.delete(f"/api/v1/contracts/{contract['id']}", headers=manager).status_code == 200
    assert not second.exists()


class _FailingTokens:
    def issue(self, contract_id: int, tenant_national_id: str) -> str:
        raise RuntimeError("signing key unavailable")


def test_rolled_back_create_leaves_no_document(seed, tmp_path):
    _, manager, _, _, prop, tenant = _setup(seed)
    lifecycle = ContractLifecycleManager(
        status_sync=PropertyStatusSynchronizer(),
        tokens=_FailingTokens(),
        documents=ContractDocumentGenerator(str(tmp_path)),
    )
    now = utcnow()
    data = schemas.ContractCreate(
        property_id=prop["id"],
        tenant_id=tenant["id"],
        price=1000,
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=30),
        payment_frequency="MONTHLY",
    )
    db = SessionLocal()
    try:
        with pytest.raises(RuntimeError):
            lifecycle.create(db, data, "ADMIN", None)
        assert db.query(models.Contract).count() == 0
    finally:
        db.close()
    assert list(tmp_path.iterdir()) == []
    assert seed.property_status(manager, prop["id"]) == "AVAILABLE"
