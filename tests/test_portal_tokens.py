# Portal token codec: claims, TTL boundary on an injected clock, and separation from staff tokens.
from __future__ import annotations

from types import SimpleNamespace

import jwt
import pytest

from rentalcore.errors import ExpiredToken, InvalidToken, WrongTokenType
from rentalcore.portal_tokens import DEFAULT_TTL_SECONDS, PORTAL_TOKEN_TYPE, PortalClaims, PortalTokenCodec
from rentalcore.security import create_access_token, decode_access_token

SECRET = "test-secret"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_issue_then_verify_returns_claims():
    clock = FakeClock()
    codec = PortalTokenCodec(SECRET, clock=clock)
    token = codec.issue(42, "NID00042")

    assert codec.verify(token) == PortalClaims(contract_id=42, tenant_national_id="NID00042")

    payload = jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False})
    assert payload["type"] == PORTAL_TOKEN_TYPE
    assert payload["contractId"] == 42
    assert payload["tenantNationalId"] == "NID00042"
    assert payload["exp"] - payload["iat"] == DEFAULT_TTL_SECONDS


def test_token_expires_after_ttl():
    clock = FakeClock()
    codec = PortalTokenCodec(SECRET, ttl_seconds=3600, clock=clock)
    token = codec.issue(1, "A1")

    clock.now += 3599
    assert codec.verify(token).contract_id == 1

    clock.now += 1
    with pytest.raises(ExpiredToken):
        codec.verify(token)


def test_default_ttl_is_thirty_days():
    clock = FakeClock()
    codec = PortalTokenCodec(SECRET, clock=clock)
    token = codec.issue(1, "A1")
    clock.now += 29 * 24 * 3600
    codec.verify(token)
    clock.now += 24 * 3600
    with pytest.raises(ExpiredToken):
        codec.verify(token)


def test_staff_token_is_rejected_as_wrong_type():
    staff = create_access_token(user=SimpleNamespace(id=7, email="m@example.com", role="PROPERTY_MANAGER"))
    codec = PortalTokenCodec(SECRET)
    with pytest.raises(WrongTokenType):
        codec.verify(staff)


def test_portal_token_is_rejected_by_staff_decoder():
    portal = PortalTokenCodec(SECRET).issue(3, "B2")
    with pytest.raises(WrongTokenType):
        decode_access_token(portal)


def test_bad_signature_and_garbage_are_invalid():
    token = PortalTokenCodec("another-secret").issue(1, "A1")
    with pytest.raises(InvalidToken):
        PortalTokenCodec(SECRET).verify(token)
    with pytest.raises(InvalidToken):
        PortalTokenCodec(SECRET).verify("not-a-jwt")


def test_tampered_payload_is_invalid():
    token = PortalTokenCodec(SECRET).issue(1, "A1")
    header, payload, signature = token.split(".")
    forged = jwt.encode({"contractId": 2, "tenantNationalId": "A1", "type": PORTAL_TOKEN_TYPE, "exp": 9_999_999_999}, "x")
    with pytest.raises(InvalidToken):
        PortalTokenCodec(SECRET).verify(".".join([header, forged.split(".")[1], signature]))


def test_missing_claims_are_invalid():
    token = jwt.encode({"type": PORTAL_TOKEN_TYPE, "exp": 9_999_999_999}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidToken):
        PortalTokenCodec(SECRET).verify(token)
