# Property endpoints.
# Admins and managers create and manage properties; owners read theirs and edit descriptive fields.
# RENTED is never set by hand: it follows the contract set (see property_status).
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..audit import record_audit
from ..clock import utcnow
from ..db import get_db
from .. import models, schemas
from ..errors import AccessDenied, Conflict, NotFound, ValidationError
from ..locks import lock_property_row, property_lock
from ..property_status import PropertyStatusSynchronizer
from ..rate_limit import rate_limit
from ..scope import EntityKind, load_in_scope, scope_filter
from .auth import get_current_user, require_staff_writer

router = APIRouter()

_status_sync = PropertyStatusSynchronizer()

# Fields an owner may not change on their own property
_OWNER_LOCKED_FIELDS = ("owner_id", "estate_id")


def _check_owner(db: Session, owner_id: int) -> None:
    owner = db.get(models.User, owner_id)
    if owner is None:
        raise NotFound("Owner not found")
    if owner.role != models.Role.PROPERTY_OWNER.value:
        raise ValidationError("Owner must have PROPERTY_OWNER role")


def _check_estate(db: Session, estate_id: int, user: models.User) -> None:
    estate = db.get(models.Estate, estate_id)
    if estate is None:
        raise NotFound("Estate not found")
    if user.role == models.Role.PROPERTY_MANAGER.value and estate.manager_id != user.id:
        raise AccessDenied("Access denied: you can only place properties in estates you manage")


@router.get("/properties", response_model=List[schemas.PropertyRead])
def list_properties(
    status_filter: Optional[schemas.PropertyStatus] = Query(default=None, alias="status"),
    estate_id: Optional[int] = Query(default=None, ge=1),
    owner_id: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """
    List properties visible to the caller, newest first.

    `owner_id` is honored for admins only; other roles are already narrowed by scope.
    """
    q = db.query(models.Property).filter(scope_filter(EntityKind.PROPERTY, user.role, user.id))
    if status_filter:
        q = q.filter(models.Property.status == status_filter)
    if estate_id is not None:
        q = q.filter(models.Property.estate_id == estate_id)
    if owner_id is not None and user.role == models.Role.ADMIN.value:
        q = q.filter(models.Property.owner_id == owner_id)
    return q.order_by(models.Property.id.desc()).all()


@router.get("/properties/{property_id}", response_model=schemas.PropertyRead)
def get_property(property_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return load_in_scope(db, EntityKind.PROPERTY, property_id, user.role, user.id)


@router.post(
    "/properties",
    response_model=schemas.PropertyRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_property(
    payload: schemas.PropertyCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    _check_owner(db, payload.owner_id)
    if payload.estate_id is not None:
        _check_estate(db, payload.estate_id, user)

    obj = models.Property(
        manager_id=user.id if user.role == models.Role.PROPERTY_MANAGER.value else None,
        **payload.model_dump(),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "CREATE", "property", obj.id)
    return obj


@router.put("/properties/{property_id}", response_model=schemas.PropertyRead, dependencies=[Depends(rate_limit("write"))])
def update_property(
    property_id: int,
    payload: schemas.PropertyUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    obj = load_in_scope(db, EntityKind.PROPERTY, property_id, user.role, user.id)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "property_type", "owner_id"):
        if changes.get(field, 0) is None:
            changes.pop(field)
    if user.role == models.Role.PROPERTY_OWNER.value:
        for field in _OWNER_LOCKED_FIELDS:
            changes.pop(field, None)

    if "owner_id" in changes:
        _check_owner(db, changes["owner_id"])
    if changes.get("estate_id") is not None:
        _check_estate(db, changes["estate_id"], user)

    for field, value in changes.items():
        setattr(obj, field, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "UPDATE", "property", obj.id, {"fields": sorted(changes)})
    return obj


@router.patch(
    "/properties/{property_id}/status",
    response_model=schemas.PropertyRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_property_status(
    property_id: int,
    payload: schemas.PropertyStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    """Set AVAILABLE or RESERVED by hand; refused while an active contract holds the property."""
    obj = load_in_scope(db, EntityKind.PROPERTY, property_id, user.role, user.id)
    with property_lock(obj.id):
        try:
            lock_property_row(db, obj.id)
            if _status_sync.count_active(db, obj.id, now=utcnow()) > 0:
                raise Conflict("Property has an active contract; its status is RENTED until the lease ends")
            obj.status = payload.status
            db.add(obj)
            db.commit()
        except Exception:
            db.rollback()
            raise
    db.refresh(obj)
    record_audit(user, "UPDATE", "property", obj.id, {"status": payload.status})
    return obj


@router.delete(
    "/properties/{property_id}",
    response_model=schemas.MessageResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_property(property_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_staff_writer)):
    obj = load_in_scope(db, EntityKind.PROPERTY, property_id, user.role, user.id)
    with property_lock(obj.id):
        try:
            lock_property_row(db, obj.id)
            if _status_sync.count_active(db, obj.id, now=utcnow()) > 0:
                raise Conflict("Cannot delete property with active contracts")
            # Historical leases go with the property
            contract_ids = select(models.Contract.id).where(models.Contract.property_id == obj.id)
            db.query(models.MaintenanceRequest).filter(
                models.MaintenanceRequest.contract_id.in_(contract_ids)
            ).delete(synchronize_session=False)
            db.query(models.Contract).filter(models.Contract.property_id == obj.id).delete(synchronize_session=False)
            db.delete(obj)
            db.commit()
        except Exception:
            db.rollback()
            raise
    record_audit(user, "DELETE", "property", property_id)
    return {"message": "Property deleted successfully"}
