# Parent estate endpoints. Managers own the estates they create; owners see estates holding their properties.
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..audit import record_audit
from ..db import get_db
from .. import models, schemas
from ..errors import Conflict
from ..rate_limit import rate_limit
from ..scope import EntityKind, load_in_scope, scope_filter
from .auth import get_current_user, require_staff_writer

router = APIRouter()


@router.get("/estates", response_model=List[schemas.EstateRead])
def list_estates(
    search: Optional[str] = Query(default=None, max_length=100),
    city: Optional[str] = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    q = db.query(models.Estate).filter(scope_filter(EntityKind.ESTATE, user.role, user.id))
    if search:
        pattern = f"%{search}%"
        q = q.filter(
            or_(
                models.Estate.name.ilike(pattern),
                models.Estate.description.ilike(pattern),
                models.Estate.address.ilike(pattern),
            )
        )
    if city:
        q = q.filter(models.Estate.city.ilike(f"%{city}%"))
    return q.order_by(models.Estate.id.desc()).all()


@router.get("/estates/{estate_id}", response_model=schemas.EstateRead)
def get_estate(estate_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return load_in_scope(db, EntityKind.ESTATE, estate_id, user.role, user.id)


@router.post(
    "/estates",
    response_model=schemas.EstateRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_estate(
    payload: schemas.EstateCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    obj = models.Estate(
        manager_id=user.id if user.role == models.Role.PROPERTY_MANAGER.value else None,
        **payload.model_dump(),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "CREATE", "estate", obj.id)
    return obj


@router.put("/estates/{estate_id}", response_model=schemas.EstateRead, dependencies=[Depends(rate_limit("write"))])
def update_estate(
    estate_id: int,
    payload: schemas.EstateUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
):
    obj = load_in_scope(db, EntityKind.ESTATE, estate_id, user.role, user.id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    for field, value in changes.items():
        setattr(obj, field, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    record_audit(user, "UPDATE", "estate", obj.id, {"fields": sorted(changes)})
    return obj


@router.delete("/estates/{estate_id}", response_model=schemas.MessageResponse, dependencies=[Depends(rate_limit("write"))])
def delete_estate(estate_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_staff_writer)):
    obj = load_in_scope(db, EntityKind.ESTATE, estate_id, user.role, user.id)
    if db.query(models.Property.id).filter(models.Property.estate_id == obj.id).first():
        raise Conflict("Cannot delete an estate that still has properties")
    db.delete(obj)
    db.commit()
    record_audit(user, "DELETE", "estate", estate_id)
    return {"message": "Estate deleted successfully"}
