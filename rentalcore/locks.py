# Locking helpers that serialize check-then-write sequences on one resource (e.g., a property).
# Redis gates across processes and fails open when Redis is down; a process-local lock gates threads.
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator
from uuid import uuid4

from sqlalchemy.orm import Session

from . import models
from .errors import Busy
from .redis_client import get_redis

# Namespaced logger for lock acquisition/release diagnostics
logger = logging.getLogger("rentalcore.locks")

# How long a request waits for a sibling thread holding the same key
LOCK_WAIT_SECONDS = float(os.getenv("LOCK_WAIT_SECONDS", "5"))

_local_guard = threading.Lock()
_local_locks: Dict[str, threading.Lock] = {}


def _local_lock(key: str) -> threading.Lock:
    with _local_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = _local_locks[key] = threading.Lock()
        return lock


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = 5000) -> Iterator[bool]:
    """
    Best-effort distributed lock implemented with Redis SET NX PX.

    Behavior:
    - True when the lock is acquired, or when Redis is unavailable (fail-open).
    - False when another process holds the lock.
    - Unlock uses a token-checked Lua script to avoid releasing a lock we don't own.
    """
    r = get_redis()
    if r is None:
        # Fail-open if Redis is disabled/unavailable
        yield True
        return

    token = uuid4().hex
    acquired = False
    try:
        acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
    except Exception as exc:
        # Fail open on unexpected Redis errors; proceed without the lock
        logger.warning("redis_try_lock error (key=%s): %s", key, exc)
        yield True
        return
    try:
        yield acquired
    finally:
        if acquired:
            # Release only if we still own the lock (token matches current value)
            try:
                r.eval(
                    """
                    if redis.call('get', KEYS[1]) == ARGV[1] then
                        return redis.call('del', KEYS[1])
                    else
                        return 0
                    end
                    """,
                    1,
                    key,
                    token,
                )
            except Exception as exc:
                # The lock will expire by TTL
                logger.debug("redis_try_lock release error (key=%s): %s", key, exc)


@contextmanager
def property_lock(property_id: int, ttl_ms: int = 5000) -> Iterator[None]:
    """
    Hold the per-property lock for the duration of the block.

    Raises Busy when another thread or process keeps the property locked:

        with property_lock(pid):
            # count active contracts, insert, flip status, commit
    """
    key = f"lock:contract:property:{property_id}"
    local = _local_lock(key)
    if not local.acquire(timeout=LOCK_WAIT_SECONDS):
        raise Busy("Property is being updated by another request; retry shortly")
    try:
        with redis_try_lock(key, ttl_ms=ttl_ms) as locked:
            if not locked:
                raise Busy("Property is being updated by another request; retry shortly")
            yield
    finally:
        local.release()


def lock_property_row(db: Session, property_id: int) -> None:
    """Take a row lock on the property inside the current transaction where the dialect supports it."""
    if db.bind is None or db.bind.dialect.name == "sqlite":
        return
    db.query(models.Property.id).filter(models.Property.id == property_id).with_for_update().first()
