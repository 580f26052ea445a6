# Maintenance request endpoints for staff. Status changes go through maintenance_states.
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..audit import record_audit
from ..clock import utcnow
from ..db import get_db
from .. import maintenance_states, models, schemas
from ..rate_limit import rate_limit
from ..scope import EntityKind, load_in_scope, scope_filter
from .auth import get_current_user, require_staff_writer

router = APIRouter()


def open_request(
    db: Session,
    contract: models.Contract,
    tenant_id: int,
    payload: schemas.MaintenanceBase,
) -> models.MaintenanceRequest:
    """Create a PENDING request on a running contract and commit it. Shared with the tenant portal."""
    maintenance_states.ensure_can_open(contract, utcnow())
    obj = models.MaintenanceRequest(
        contract_id=contract.id,
        tenant_id=tenant_id,
        title=payload.title,
        description=payload.description,
        images=list(payload.images),
        status=maintenance_states.INITIAL_STATUS,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def _scoped_query(db: Session, user: models.User):
    return db.query(models.MaintenanceRequest).filter(
        scope_filter(EntityKind.MAINTENANCE_REQUEST, user.role, user.id)
    )


@router.get("/maintenance", response_model=List[schemas.MaintenanceRead])
def list_requests(
    contract_id: Optional[int] = Query(default=None, ge=1),
    tenant_id: Optional[int] = Query(default=None, ge=1),
    property_id: Optional[int] = Query(default=None, ge=1),
    status_filter: Optional[schemas.MaintenanceStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    q = _scoped_query(db, user)
    if contract_id is not None:
        q = q.filter(models.MaintenanceRequest.contract_id == contract_id)
    if tenant_id is not None:
        q = q.filter(models.MaintenanceRequest.tenant_id == tenant_id)
    if property_id is not None:
        on_property = select(models.Contract.id).where(models.Contract.property_id == property_id)
        q = q.filter(models.MaintenanceRequest.contract_id.in_(on_property))
    if status_filter:
        q = q.filter(models.MaintenanceRequest.status == status_filter)
    return q.order_by(models.MaintenanceRequest.created_at.desc(), models.MaintenanceRequest.id.desc()).all()


# Declared before /maintenance/{request_id} so "stats" is not parsed as an id
@router.get("/maintenance/stats", response_model=schemas.MaintenanceStats)
def request_stats(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    rows = (
        db.query(models.MaintenanceRequest.status, func.count(models.MaintenanceRequest.id))
        .filter(scope_filter(EntityKind.MAINTENANCE_REQUEST, user.role, user.id))
        .group_by(models.MaintenanceRequest.status)
        .all()
    )
    counts = {s: n for s, n in rows}
    S = models.MaintenanceStatus
    return schemas.MaintenanceStats(
        total=sum(counts.values()),
        pending=counts.get(S.PENDING.value, 0),
        in_progress=counts.get(S.IN_PROGRESS.value, 0),
        completed=counts.get(S.COMPLETED.value, 0),
        cancelled=counts.get(S.CANCELLED.value, 0),
    )


@router.get("/maintenance/{request_id}", response_model=schemas.MaintenanceRead)
def get_request(request_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return load_in_scope(db, EntityKind.MAINTENANCE_REQUEST, request_id, user.role, user.id)


@router.post(
    "/maintenance",
    response_model=schemas.MaintenanceRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_request(
    payload: schemas.MaintenanceCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    contract = load_in_scope(db, EntityKind.CONTRACT, payload.contract_id, user.role, user.id)
    obj = open_request(db, contract, contract.tenant_id, payload)
    record_audit(user, "CREATE", "maintenance_request", obj.id, {"contract_id": contract.id})
    return obj


def _apply_update(
    request_id: int,
    payload: schemas.MaintenanceUpdate,
    db: Session,
    user: models.User,
) -> models.MaintenanceRequest:
    obj = load_in_scope(db, EntityKind.MAINTENANCE_REQUEST, request_id, user.role, user.id)
    details = {}
    if payload.status is not None:
        details["from"] = obj.status
        obj.status = maintenance_states.transition(obj.status, payload.status)
        details["to"] = obj.status
    else:
        maintenance_states.ensure_mutable(obj.status)
    if payload.internal_notes is not None:
        obj.internal_notes = payload.internal_notes
        details["notes"] = True

    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "UPDATE", "maintenance_request", obj.id, details)
    return obj


@router.patch(
    "/maintenance/{request_id}",
    response_model=schemas.MaintenanceRead,
    dependencies=[Depends(rate_limit("write"))],
)
def patch_request(
    request_id: int,
    payload: schemas.MaintenanceUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    """
    Move a request through its lifecycle or annotate it.

    Errors:
    - 409 already_in_state when the requested status equals the current one
    - 400 invalid_transition for edges outside the lifecycle, and for any change to a finished request
    """
    return _apply_update(request_id, payload, db, user)


@router.put(
    "/maintenance/{request_id}",
    response_model=schemas.MaintenanceRead,
    dependencies=[Depends(rate_limit("write"))],
)
def put_request(
    request_id: int,
    payload: schemas.MaintenanceUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    return _apply_update(request_id, payload, db, user)


@router.delete(
    "/maintenance/{request_id}",
    response_model=schemas.MessageResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_request(request_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_staff_writer)):
    obj = load_in_scope(db, EntityKind.MAINTENANCE_REQUEST, request_id, user.role, user.id)
    db.delete(obj)
    db.commit()
    record_audit(user, "DELETE", "maintenance_request", request_id)
    return {"message": "Maintenance request deleted successfully"}
