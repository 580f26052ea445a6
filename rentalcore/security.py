# Staff credentials: password hashing and access-token encode/decode.
from __future__ import annotations

import os
import time

import jwt
from passlib.context import CryptContext

from . import models
from .errors import ExpiredToken, InvalidToken, WrongTokenType

# Shared signing key for staff and tenant portal tokens; the `type` claim keeps the two apart
JWT_SECRET: str = os.getenv("RENTALCORE_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = int(os.getenv("JWT_TTL_SECONDS", str(60 * 60 * 24 * 7)))  # 7 days
ACCESS_TOKEN_TYPE = "ACCESS"

# Use bcrypt_sha256 to avoid bcrypt's 72-byte password limit and handle unicode safely.
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, user: models.User) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user.id),
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + JWT_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str) -> dict:
    """Decode a staff token; portal tokens are refused with WrongTokenType."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG], options={"require": ["exp"]})
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredToken("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken("Invalid token") from exc
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise WrongTokenType("Invalid token type")
    return payload
