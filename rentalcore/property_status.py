# Keeps Property.status consistent with the contracts referencing the property.
# Methods only stage changes on the caller's session; the caller commits them with its own writes.
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from . import models
from .clock import utcnow
from .errors import NotFound

logger = logging.getLogger("rentalcore.property_status")


class PropertyStatusSynchronizer:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def count_active(
        self,
        db: Session,
        property_id: int,
        *,
        exclude_contract_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        q = db.query(models.Contract.id).filter(
            models.Contract.property_id == property_id,
            models.Contract.end_date >= (now or self._clock()),
        )
        if exclude_contract_id is not None:
            q = q.filter(models.Contract.id != exclude_contract_id)
        return q.count()

    def _load(self, db: Session, property_id: int) -> models.Property:
        prop = db.get(models.Property, property_id)
        if prop is None:
            raise NotFound("Property not found")
        return prop

    def _set(self, prop: models.Property, status: models.PropertyStatus, db: Session) -> None:
        if prop.status != status.value:
            logger.info("property %s status %s -> %s", prop.id, prop.status, status.value)
            prop.status = status.value
            db.add(prop)

    def after_contract_created(self, db: Session, property_id: int) -> models.Property:
        # Creation already passed the exclusivity check under the property lock
        prop = self._load(db, property_id)
        self._set(prop, models.PropertyStatus.RENTED, db)
        return prop

    def after_contract_removed(self, db: Session, property_id: int) -> models.Property:
        """Recount remaining active contracts; only an empty count frees the property."""
        db.flush()
        prop = self._load(db, property_id)
        if self.count_active(db, property_id) == 0:
            self._set(prop, models.PropertyStatus.AVAILABLE, db)
        return prop

    def recompute(self, db: Session, property_id: int, now: Optional[datetime] = None) -> models.Property:
        """
        Derive the status from the contract set.

        RENTED when an active contract exists; a RENTED property without one becomes AVAILABLE.
        AVAILABLE and RESERVED are left alone otherwise since they are staff-set.
        """
        db.flush()
        prop = self._load(db, property_id)
        if self.count_active(db, property_id, now=now) > 0:
            self._set(prop, models.PropertyStatus.RENTED, db)
        elif prop.status == models.PropertyStatus.RENTED.value:
            self._set(prop, models.PropertyStatus.AVAILABLE, db)
        return prop
