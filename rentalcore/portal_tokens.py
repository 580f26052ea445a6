# Tenant portal capability tokens.
# A portal token binds one contract to the tenant's national id and replaces a login account.
# Tokens are stateless and are not revocable: a deleted contract is caught when the portal loads it.
from __future__ import annotations

import os
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

import jwt

from .errors import ExpiredToken, InvalidToken, WrongTokenType
from .security import JWT_ALG, JWT_SECRET

PORTAL_TOKEN_TYPE = "TENANT_PORTAL"
DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class PortalClaims:
    contract_id: int
    tenant_national_id: str


class PortalTokenCodec:
    """Issue and verify portal tokens against a signing key and a clock.

    Expiry is checked against the injected clock rather than PyJWT's wall clock,
    so the TTL boundary is testable.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        algorithm: str = JWT_ALG,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._ttl_seconds = ttl_seconds
        self._algorithm = algorithm
        self._clock = clock

    def issue(self, contract_id: int, tenant_national_id: str) -> str:
        now = int(self._clock())
        payload = {
            "contractId": contract_id,
            "tenantNationalId": tenant_national_id,
            "type": PORTAL_TOKEN_TYPE,
            "iat": now,
            "exp": now + self._ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> PortalClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp"]},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken("Invalid token") from exc

        if payload.get("type") != PORTAL_TOKEN_TYPE:
            raise WrongTokenType("Invalid token type")
        if self._clock() >= payload["exp"]:
            raise ExpiredToken("Token has expired")

        contract_id = payload.get("contractId")
        national_id = payload.get("tenantNationalId")
        if not isinstance(contract_id, int) or not isinstance(national_id, str) or not national_id:
            raise InvalidToken("Invalid token")
        return PortalClaims(contract_id=contract_id, tenant_national_id=national_id)


@lru_cache(maxsize=1)
def get_portal_token_codec() -> PortalTokenCodec:
    days = int(os.getenv("TENANT_PORTAL_TOKEN_TTL_DAYS", "30"))
    return PortalTokenCodec(JWT_SECRET, ttl_seconds=days * 24 * 60 * 60)
