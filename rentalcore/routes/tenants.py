# Tenant endpoints. Tenants are lease holders, not login principals.
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..audit import record_audit
from ..clock import utcnow
from ..db import get_db
from .. import models, schemas
from ..errors import Conflict
from ..rate_limit import rate_limit
from ..scope import EntityKind, load_in_scope, scope_filter
from .auth import get_current_user, require_staff_writer

router = APIRouter()


def _placeholder_email(national_id: str) -> str:
    return f"tenant_{national_id}@tenant.local"


def _ensure_unique(db: Session, *, national_id: Optional[str], email: Optional[str], exclude_id: Optional[int] = None):
    if national_id:
        q = db.query(models.Tenant.id).filter(models.Tenant.national_id == national_id)
        if exclude_id is not None:
            q = q.filter(models.Tenant.id != exclude_id)
        if q.first():
            raise Conflict("Tenant with this national ID already exists")
    if email:
        q = db.query(models.Tenant.id).filter(models.Tenant.email == email)
        if exclude_id is not None:
            q = q.filter(models.Tenant.id != exclude_id)
        if q.first():
            raise Conflict("Tenant with this email already exists")


@router.get("/tenants", response_model=List[schemas.TenantRead])
def list_tenants(
    search: Optional[str] = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    q = db.query(models.Tenant).filter(scope_filter(EntityKind.TENANT, user.role, user.id))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                models.Tenant.first_name.ilike(pattern),
                models.Tenant.last_name.ilike(pattern),
                models.Tenant.email.ilike(pattern),
                models.Tenant.phone.ilike(pattern),
                models.Tenant.national_id.ilike(pattern),
            )
        )
    return q.order_by(models.Tenant.id.desc()).all()


@router.get("/tenants/{tenant_id}", response_model=schemas.TenantRead)
def get_tenant(tenant_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return load_in_scope(db, EntityKind.TENANT, tenant_id, user.role, user.id)


@router.get("/tenants/{tenant_id}/stats", response_model=schemas.TenantStats)
def tenant_stats(tenant_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    now = utcnow()
    tenant = load_in_scope(db, EntityKind.TENANT, tenant_id, user.role, user.id, now)

    total = db.query(func.count(models.Contract.id)).filter(models.Contract.tenant_id == tenant.id).scalar() or 0
    active = (
        db.query(func.count(models.Contract.id))
        .filter(models.Contract.tenant_id == tenant.id, models.Contract.end_date >= now)
        .scalar()
        or 0
    )
    requests = db.query(models.MaintenanceRequest.status).filter(models.MaintenanceRequest.tenant_id == tenant.id).all()
    pending = sum(1 for (s,) in requests if s == models.MaintenanceStatus.PENDING.value)

    return schemas.TenantStats(
        total_contracts=total,
        active_contracts=active,
        expired_contracts=total - active,
        total_maintenance_requests=len(requests),
        pending_maintenance_requests=pending,
    )


@router.post(
    "/tenants",
    response_model=schemas.TenantRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_tenant(
    payload: schemas.TenantCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    email = payload.email or _placeholder_email(payload.national_id)
    _ensure_unique(db, national_id=payload.national_id, email=email)

    data = payload.model_dump()
    data["email"] = email
    obj = models.Tenant(
        manager_id=user.id if user.role == models.Role.PROPERTY_MANAGER.value else None,
        **data,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "CREATE", "tenant", obj.id)
    return obj


@router.put("/tenants/{tenant_id}", response_model=schemas.TenantRead, dependencies=[Depends(rate_limit("write"))])
def update_tenant(
    tenant_id: int,
    payload: schemas.TenantUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    obj = load_in_scope(db, EntityKind.TENANT, tenant_id, user.role, user.id)
    changes = payload.model_dump(exclude_unset=True)
    # Required columns ignore an explicit null; optional ones may be cleared
    for field in ("national_id", "first_name", "last_name", "email"):
        if changes.get(field, "") is None:
            changes.pop(field)
    _ensure_unique(db, national_id=changes.get("national_id"), email=changes.get("email"), exclude_id=obj.id)

    for field, value in changes.items():
        setattr(obj, field, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "UPDATE", "tenant", obj.id, {"fields": sorted(changes)})
    return obj


@router.delete("/tenants/{tenant_id}", response_model=schemas.MessageResponse, dependencies=[Depends(rate_limit("write"))])
def delete_tenant(tenant_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_staff_writer)):
    now = utcnow()
    obj = load_in_scope(db, EntityKind.TENANT, tenant_id, user.role, user.id, now)
    active = (
        db.query(models.Contract.id)
        .filter(models.Contract.tenant_id == obj.id, models.Contract.end_date >= now)
        .first()
    )
    if active:
        raise Conflict("Cannot delete tenant with active contracts")

    # Only expired leases remain; they and their requests go with the tenant
    contract_ids = select(models.Contract.id).where(models.Contract.tenant_id == obj.id)
    db.query(models.MaintenanceRequest).filter(
        or_(
            models.MaintenanceRequest.contract_id.in_(contract_ids),
            models.MaintenanceRequest.tenant_id == obj.id,
        )
    ).delete(synchronize_session=False)
    db.query(models.Contract).filter(models.Contract.tenant_id == obj.id).delete(synchronize_session=False)
    db.delete(obj)
    db.commit()
    record_audit(user, "DELETE", "tenant", tenant_id)
    return {"message": "Tenant deleted successfully"}
