# Background sweepers for periodic maintenance tasks (e.g., releasing properties whose lease lapsed).
# These utilities are invoked from startup threads or scheduler jobs.
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .clock import utcnow
from .db import SessionLocal
from .errors import Busy
from .locks import lock_property_row, property_lock
from .property_status import PropertyStatusSynchronizer
from . import models

logger = logging.getLogger("rentalcore.sweepers")


def _candidate_ids(db: Session, now: datetime) -> List[int]:
    """Properties whose stored status disagrees with their contracts at `now`."""
    leased = select(models.Contract.property_id).where(models.Contract.end_date >= now)
    rented = models.Property.status == models.PropertyStatus.RENTED.value
    rows = (
        db.query(models.Property.id)
        .filter(
            (rented & models.Property.id.not_in(leased)) | (~rented & models.Property.id.in_(leased))
        )
        .order_by(models.Property.id)
        .all()
    )
    return [pid for (pid,) in rows]


def sweep_property_statuses(db: Optional[Session] = None, now: Optional[datetime] = None) -> int:
    """
    Reconcile Property.status with the contracts that are active right now.

    Semantics:
    - RENTED properties without an active contract become AVAILABLE (the lease ran out).
    - Properties with an active contract that are not RENTED become RENTED.
    - Each property is recounted and written under its property lock, one commit per property.
    - A property locked by a contract write is skipped until the next sweep.
    - Idempotent across repeated runs.
    - Accepts an optional Session; otherwise creates and cleans up its own.

    Returns:
    - Number of properties whose status changed.
    """
    # Track whether this call created its own DB session (so we can close it)
    created_session = False
    if db is None:
        db = SessionLocal()
        created_session = True

    sync = PropertyStatusSynchronizer()
    released = marked = 0
    try:
        now = now or utcnow()
        for pid in _candidate_ids(db, now):
            try:
                with property_lock(pid):
                    lock_property_row(db, pid)
                    # Drop anything read before the lock was held
                    db.expire_all()
                    prop = db.get(models.Property, pid)
                    if prop is None:
                        db.rollback()
                        continue
                    before = prop.status
                    sync.recompute(db, pid, now)
                    db.commit()
            except Busy:
                logger.info("status sweep: property %s is locked, left for the next sweep", pid)
                continue
            if prop.status == before:
                continue
            if prop.status == models.PropertyStatus.RENTED.value:
                marked += 1
            else:
                released += 1

        if released or marked:
            logger.info("status sweep: %s released, %s marked rented", released, marked)
        return released + marked
    except Exception:
        # Roll back partial work, then bubble up the error
        db.rollback()
        raise
    finally:
        # Close the session only if this function created it
        if created_session:
            db.close()
