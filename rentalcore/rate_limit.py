# Redis-backed fixed-window rate limiter used as a FastAPI dependency.
# Keys: rl:v1:{scope}:ip:{ip}. Fails open when Redis is disabled or unavailable.
import logging
import os
from typing import Callable, Dict, Literal

from fastapi import HTTPException, Request, status

from .redis_client import get_redis

logger = logging.getLogger("rentalcore.rate_limit")

Scope = Literal["login", "signup", "write", "portal"]

# Per-scope cap per window, overridable via RATE_LIMIT_<SCOPE>_PER_WINDOW
_DEFAULT_LIMITS: Dict[str, int] = {
    "login": 10,
    "signup": 5,
    "write": 30,
    "portal": 20,
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _client_ip(request: Request) -> str:
    # Remote address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    Build a dependency that allows `limit` hits per IP and scope within a fixed window.

    Window length: RATE_LIMIT_WINDOW_SECONDS (default 60s).
    Exceeding the cap answers 429 with the seconds left in the window.
    """
    window = _env_int("RATE_LIMIT_WINDOW_SECONDS", 60)
    limit = _env_int(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW", _DEFAULT_LIMITS[scope])

    def _dependency(request: Request) -> None:
        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:v1:{scope}:ip:{ip}"
        try:
            current = r.incr(key, 1)
            if current == 1:
                # First hit opens the window
                r.expire(key, window)
            ttl = r.ttl(key) if current > limit else None
        except Exception as exc:
            logger.warning("Rate limit fail-open (scope=%s, ip=%s): %s", scope, ip, exc)
            return

        if ttl is not None:
            retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": "rate_limited", "scope": scope, "limit": limit, "retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

    return _dependency
