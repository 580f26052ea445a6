# Contract lifecycle: create, update and delete leases while holding the property exclusivity invariant.
#
# Every check-then-write sequence runs under the per-property lock (threads and processes) plus a
# row lock on server databases, and commits the contract write and the property status in one transaction.
from __future__ import annotations

import logging
from contextlib import ExitStack, contextmanager
from datetime import datetime
from functools import lru_cache
from typing import Callable, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models, schemas
from .clock import as_utc, is_active, utcnow
from .documents import ContractDocumentGenerator
from .errors import AccessDenied, Conflict, NotFound, ValidationError
from .locks import lock_property_row, property_lock
from .portal_tokens import PortalTokenCodec, get_portal_token_codec
from .property_status import PropertyStatusSynchronizer
from .scope import EntityKind, load_in_scope, scope_filter

logger = logging.getLogger("rentalcore.contracts")

_WRITER_ROLES = (models.Role.ADMIN.value, models.Role.PROPERTY_MANAGER.value)
_DOCUMENT_FIELDS = ("price", "start_date", "end_date", "payment_frequency")
_LOCK_ATTEMPTS = 3


def _same(a, b) -> bool:
    if isinstance(a, datetime) and isinstance(b, datetime):
        return as_utc(a) == as_utc(b)
    return a == b


class ContractLifecycleManager:
    """
    Stateless orchestration of contract writes.

    Collaborators are injected once per process; the session and the actor come with each call.
    """

    def __init__(
        self,
        *,
        status_sync: PropertyStatusSynchronizer,
        tokens: PortalTokenCodec,
        documents: ContractDocumentGenerator,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.status_sync = status_sync
        self.tokens = tokens
        self.documents = documents
        self._clock = clock

    # ----------------
    # Reads
    # ----------------
    def get(self, db: Session, contract_id: int, role: str, actor_id: int) -> models.Contract:
        return load_in_scope(db, EntityKind.CONTRACT, contract_id, role, actor_id, self._clock())

    def list(
        self,
        db: Session,
        role: str,
        actor_id: int,
        *,
        property_id: Optional[int] = None,
        tenant_id: Optional[int] = None,
        owner_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[models.Contract]:
        now = self._clock()
        q = db.query(models.Contract).filter(scope_filter(EntityKind.CONTRACT, role, actor_id, now))
        if property_id is not None:
            q = q.filter(models.Contract.property_id == property_id)
        if tenant_id is not None:
            q = q.filter(models.Contract.tenant_id == tenant_id)
        if owner_id is not None and role == models.Role.ADMIN.value:
            owned = select(models.Property.id).where(models.Property.owner_id == owner_id)
            q = q.filter(models.Contract.property_id.in_(owned))
        if status == "active":
            q = q.filter(models.Contract.end_date >= now)
        elif status == "expired":
            q = q.filter(models.Contract.end_date < now)
        return q.order_by(models.Contract.created_at.desc(), models.Contract.id.desc()).all()

    # ----------------
    # Writes
    # ----------------
    def _require_writer(self, role: str) -> None:
        if role not in _WRITER_ROLES:
            raise AccessDenied("Access denied: only admins and property managers can change contracts")

    def _load_target_property(self, db: Session, property_id: int, role: str, actor_id: int) -> models.Property:
        prop = db.get(models.Property, property_id)
        if prop is None:
            raise NotFound("Property not found")
        if role == models.Role.PROPERTY_MANAGER.value and prop.manager_id != actor_id:
            raise AccessDenied("Access denied: you can only lease properties you manage")
        return prop

    def _render_document(self, db: Session, contract: models.Contract) -> str:
        prop = db.get(models.Property, contract.property_id)
        tenant = db.get(models.Tenant, contract.tenant_id)
        owner = db.get(models.User, prop.owner_id) if prop is not None else None
        return self.documents.generate(contract, prop, tenant, owner)

    @contextmanager
    def _locked_contract(
        self,
        db: Session,
        contract_id: int,
        role: str,
        actor_id: int,
        target_property_id: Optional[int] = None,
    ) -> Iterator[models.Contract]:
        """
        Yield the contract while holding the locks of its property and of `target_property_id`.

        The row is re-read once the locks are held. If a concurrent write moved it to another
        property in the meantime, the locks are released and taken again for the new property.
        """
        for _ in range(_LOCK_ATTEMPTS):
            contract = self.get(db, contract_id, role, actor_id)
            pids = sorted({contract.property_id, target_property_id or contract.property_id})
            with ExitStack() as stack:
                # Fixed lock order across both properties avoids deadlock with a concurrent move
                for pid in pids:
                    stack.enter_context(property_lock(pid))
                for pid in pids:
                    lock_property_row(db, pid)
                db.expire(contract)
                contract = self.get(db, contract_id, role, actor_id)
                moved_to = contract.property_id
                if moved_to in pids:
                    yield contract
                    return
                db.rollback()
            logger.info("contract %s moved to property %s while waiting for a lock", contract_id, moved_to)
        raise Conflict("Contract is being changed by another request; retry shortly")

    def create(self, db: Session, data: schemas.ContractCreate, role: str, actor_id: int) -> models.Contract:
        self._require_writer(role)
        document_url = None
        with property_lock(data.property_id):
            try:
                now = self._clock()
                lock_property_row(db, data.property_id)
                self._load_target_property(db, data.property_id, role, actor_id)

                if self.status_sync.count_active(db, data.property_id, now=now) > 0:
                    raise Conflict("Property already has an active contract")

                if as_utc(data.end_date) <= as_utc(data.start_date):
                    raise ValidationError("End date must be after start date")

                tenant = db.get(models.Tenant, data.tenant_id)
                if tenant is None:
                    raise NotFound("Tenant not found")

                contract = models.Contract(
                    property_id=data.property_id,
                    tenant_id=data.tenant_id,
                    manager_id=actor_id if role == models.Role.PROPERTY_MANAGER.value else None,
                    price=data.price,
                    start_date=as_utc(data.start_date),
                    end_date=as_utc(data.end_date),
                    payment_frequency=data.payment_frequency,
                )
                db.add(contract)
                db.flush()

                document_url = contract.document_url = self._render_document(db, contract)
                contract.tenant_portal_token = self.tokens.issue(contract.id, tenant.national_id)

                if is_active(contract.end_date, now):
                    self.status_sync.after_contract_created(db, data.property_id)
                else:
                    # Historical lease: nothing is running, so derive rather than force RENTED
                    self.status_sync.recompute(db, data.property_id, now)

                db.commit()
            except Exception:
                db.rollback()
                self.documents.discard(document_url)
                raise
        db.refresh(contract)
        logger.info("contract %s created on property %s by %s #%s", contract.id, contract.property_id, role, actor_id)
        return contract

    def update(
        self,
        db: Session,
        contract_id: int,
        data: schemas.ContractUpdate,
        role: str,
        actor_id: int,
    ) -> models.Contract:
        self._require_writer(role)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        previous_document_url = new_document_url = None

        with self._locked_contract(db, contract_id, role, actor_id, changes.get("property_id")) as contract:
            try:
                now = self._clock()
                old_property_id = contract.property_id
                new_property_id = changes.get("property_id", old_property_id)
                property_changed = new_property_id != old_property_id
                if property_changed:
                    self._load_target_property(db, new_property_id, role, actor_id)

                if "tenant_id" in changes and changes["tenant_id"] != contract.tenant_id:
                    if db.get(models.Tenant, changes["tenant_id"]) is None:
                        raise NotFound("Tenant not found")

                start_date = as_utc(changes.get("start_date", contract.start_date))
                end_date = as_utc(changes.get("end_date", contract.end_date))
                if end_date <= start_date:
                    raise ValidationError("End date must be after start date")

                regenerate = any(
                    field in changes and not _same(changes[field], getattr(contract, field))
                    for field in _DOCUMENT_FIELDS
                )

                end_moved = "end_date" in changes and not _same(changes["end_date"], contract.end_date)
                if is_active(end_date, now) and (property_changed or end_moved):
                    others = self.status_sync.count_active(
                        db, new_property_id, exclude_contract_id=contract.id, now=now
                    )
                    if others > 0:
                        if property_changed:
                            raise Conflict("New property already has an active contract")
                        raise Conflict("Property already has another active contract")

                for field, value in changes.items():
                    if isinstance(value, datetime):
                        value = as_utc(value)
                    setattr(contract, field, value)
                db.add(contract)
                db.flush()

                if regenerate:
                    previous_document_url = contract.document_url
                    new_document_url = contract.document_url = self._render_document(db, contract)

                self.status_sync.recompute(db, new_property_id, now)
                if property_changed:
                    self.status_sync.recompute(db, old_property_id, now)

                db.commit()
            except Exception:
                db.rollback()
                self.documents.discard(new_document_url)
                raise
        if previous_document_url != new_document_url:
            self.documents.discard(previous_document_url)
        db.refresh(contract)
        return contract

    def delete(self, db: Session, contract_id: int, role: str, actor_id: int) -> int:
        """Delete the contract and its maintenance requests; returns the freed property id."""
        self._require_writer(role)
        with self._locked_contract(db, contract_id, role, actor_id) as contract:
            property_id = contract.property_id
            document_url = contract.document_url
            try:
                db.query(models.MaintenanceRequest).filter(
                    models.MaintenanceRequest.contract_id == contract.id
                ).delete(synchronize_session=False)
                db.delete(contract)
                self.status_sync.after_contract_removed(db, property_id)
                db.commit()
            except Exception:
                db.rollback()
                raise
        self.documents.discard(document_url)
        logger.info("contract %s deleted from property %s by %s #%s", contract_id, property_id, role, actor_id)
        return property_id


@lru_cache(maxsize=1)
def get_contract_manager() -> ContractLifecycleManager:
    return ContractLifecycleManager(
        status_sync=PropertyStatusSynchronizer(),
        tokens=get_portal_token_codec(),
        documents=ContractDocumentGenerator(),
    )
