# Best-effort audit trail for staff mutations.
# Written in a separate session after the primary commit so it can never fail the operation it records.
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from . import models
from .db import session_scope

logger = logging.getLogger("rentalcore.audit")


def record_audit(
    actor: Optional[models.User],
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    details: Optional[Dict[str, Any]] = None,
) -> None:
    try:
        with session_scope() as db:
            db.add(
                models.AuditLog(
                    actor_id=actor.id if actor is not None else None,
                    actor_role=actor.role if actor is not None else None,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                )
            )
    except Exception as exc:
        logger.warning("audit write failed (%s %s #%s): %s", action, entity_type, entity_id, exc)
