from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .auth import require_admin

router = APIRouter()


@router.get("/audit-logs", response_model=List[schemas.AuditLogRead])
def list_audit_logs(
    entity_type: Optional[str] = Query(default=None, max_length=50),
    entity_id: Optional[int] = Query(default=None, ge=1),
    actor_id: Optional[int] = Query(default=None, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    q = db.query(models.AuditLog)
    if entity_type:
        q = q.filter(models.AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(models.AuditLog.entity_id == entity_id)
    if actor_id is not None:
        q = q.filter(models.AuditLog.actor_id == actor_id)
    return q.order_by(models.AuditLog.id.desc()).limit(limit).all()
