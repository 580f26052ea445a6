# Shared Redis connection for locks and rate limiting.
# Opt-in through REDIS_ENABLED; every caller must cope with get_redis() returning None.
import logging
import os
import threading
from typing import Optional

_logger = logging.getLogger("rentalcore.redis")

_TRUTHY = {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return os.getenv("REDIS_ENABLED", "false").strip().lower() in _TRUTHY


_lock = threading.Lock()
_client = None
_failed = False


def get_redis():
    """
    Return a connected Redis client, or None when Redis is disabled or unreachable.

    The first failed connection attempt is remembered for the life of the process, so
    a missing Redis costs one short timeout rather than one per request.
    """
    global _client, _failed
    if not is_redis_enabled():
        return None
    with _lock:
        if _client is not None or _failed:
            return _client

        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        try:
            import redis

            client = redis.Redis.from_url(
                url,
                socket_timeout=0.25,
                socket_connect_timeout=0.25,
                retry_on_timeout=False,
            )
            client.ping()
        except Exception as exc:
            _logger.warning("Redis unavailable at %s, continuing without it: %s", url, exc)
            _failed = True
            return None

        _logger.info("Connected to Redis at %s", url)
        _client = client
        return _client


def reset_redis() -> None:
    """Forget the cached client and any earlier failure (used after config changes)."""
    global _client, _failed
    with _lock:
        _client = None
        _failed = False
