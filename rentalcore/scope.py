# Access scoping: which rows each staff role may read or mutate.
# Scopes are SQLAlchemy boolean expressions so they compose into any query as a WHERE clause.
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional, Type

from sqlalchemy import false, select, true
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from . import models
from .clock import utcnow
from .errors import AccessDenied, NotFound


class EntityKind(str, enum.Enum):
    PROPERTY = "property"
    ESTATE = "estate"
    TENANT = "tenant"
    CONTRACT = "contract"
    MAINTENANCE_REQUEST = "maintenance_request"


MODEL_FOR_KIND: dict = {
    EntityKind.PROPERTY: models.Property,
    EntityKind.ESTATE: models.Estate,
    EntityKind.TENANT: models.Tenant,
    EntityKind.CONTRACT: models.Contract,
    EntityKind.MAINTENANCE_REQUEST: models.MaintenanceRequest,
}

LABEL_FOR_KIND: dict = {
    EntityKind.PROPERTY: "Property",
    EntityKind.ESTATE: "Estate",
    EntityKind.TENANT: "Tenant",
    EntityKind.CONTRACT: "Contract",
    EntityKind.MAINTENANCE_REQUEST: "Maintenance request",
}


def _owned_property_ids(owner_id: int):
    return select(models.Property.id).where(models.Property.owner_id == owner_id)


def _manager_scope(kind: EntityKind, actor_id: int) -> ColumnElement:
    if kind is EntityKind.MAINTENANCE_REQUEST:
        # Maintenance has no manager column; it follows the contract the manager created
        managed_contracts = select(models.Contract.id).where(models.Contract.manager_id == actor_id)
        return models.MaintenanceRequest.contract_id.in_(managed_contracts)
    return MODEL_FOR_KIND[kind].manager_id == actor_id


def _owner_scope(kind: EntityKind, actor_id: int, now: datetime) -> ColumnElement:
    if kind is EntityKind.PROPERTY:
        return models.Property.owner_id == actor_id
    if kind is EntityKind.CONTRACT:
        return models.Contract.property_id.in_(_owned_property_ids(actor_id))
    if kind is EntityKind.MAINTENANCE_REQUEST:
        owned_contracts = select(models.Contract.id).where(
            models.Contract.property_id.in_(_owned_property_ids(actor_id))
        )
        return models.MaintenanceRequest.contract_id.in_(owned_contracts)
    if kind is EntityKind.TENANT:
        # Owners only see tenants while a lease on one of their properties is running
        leasing_tenants = select(models.Contract.tenant_id).where(
            models.Contract.property_id.in_(_owned_property_ids(actor_id)),
            models.Contract.end_date >= now,
        )
        return models.Tenant.id.in_(leasing_tenants)
    if kind is EntityKind.ESTATE:
        estates = select(models.Property.estate_id).where(
            models.Property.owner_id == actor_id,
            models.Property.estate_id.is_not(None),
        )
        return models.Estate.id.in_(estates)
    return false()


def scope_filter(
    kind: EntityKind,
    role: Optional[str],
    actor_id: Optional[int],
    now: Optional[datetime] = None,
) -> ColumnElement:
    """
    Return the WHERE clause limiting `kind` rows to what (role, actor_id) may see.

    - ADMIN: everything.
    - PROPERTY_MANAGER: rows whose manager_id is the actor (maintenance via its contract).
    - PROPERTY_OWNER: rows reached through Property.owner_id; tenants only with an active lease.
    - Anything else: nothing. Never raises; an empty result is the caller's answer.
    """
    if role == models.Role.ADMIN.value:
        return true()
    if actor_id is None:
        return false()
    if role == models.Role.PROPERTY_MANAGER.value:
        return _manager_scope(kind, actor_id)
    if role == models.Role.PROPERTY_OWNER.value:
        return _owner_scope(kind, actor_id, now or utcnow())
    return false()


def load_in_scope(
    db: Session,
    kind: EntityKind,
    entity_id: int,
    role: Optional[str],
    actor_id: Optional[int],
    now: Optional[datetime] = None,
):
    """
    Fetch one row by id and check it against the actor's scope.

    Raises NotFound when the row is absent and AccessDenied when it exists outside the scope.
    """
    model: Type = MODEL_FOR_KIND[kind]
    obj = db.get(model, entity_id)
    if obj is None:
        raise NotFound(f"{LABEL_FOR_KIND[kind]} not found")
    visible = (
        db.query(model.id)
        .filter(model.id == entity_id, scope_filter(kind, role, actor_id, now))
        .first()
    )
    if visible is None:
        raise AccessDenied(f"Access denied: this {LABEL_FOR_KIND[kind].lower()} is outside your scope")
    return obj
