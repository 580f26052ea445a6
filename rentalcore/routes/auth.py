from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import AccessDenied, AuthenticationRequired, Conflict, InvalidToken
from ..rate_limit import rate_limit
from ..security import create_access_token, decode_access_token, hash_password, verify_password

router = APIRouter()


# ----------------
# Dependencies
# ----------------
def bearer_token_from_auth_header(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationRequired("Authorization header missing")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise InvalidToken("Invalid token")
    return parts[1].strip()


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.User:
    token = bearer_token_from_auth_header(authorization)
    payload = decode_access_token(token)
    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise InvalidToken("Invalid token")
    user = db.get(models.User, int(user_id))
    if not user:
        raise InvalidToken("Invalid token")
    if user.is_blocked:
        raise AccessDenied("Your account has been blocked. Please contact support.")
    return user


def require_roles(*roles: models.Role) -> Callable[..., models.User]:
    allowed = {r.value for r in roles}

    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed:
            raise AccessDenied("You do not have permission to perform this action")
        return user

    return _dependency


require_staff_writer = require_roles(models.Role.ADMIN, models.Role.PROPERTY_MANAGER)
require_admin = require_roles(models.Role.ADMIN)


# ----------------
# Routes
# ----------------
@router.post(
    "/auth/signup",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("signup"))],
)
def signup(payload: schemas.UserCreate, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    if db.query(models.User.id).filter(models.User.email == payload.email).first():
        raise Conflict("User with this email already exists")
    if payload.national_id and db.query(models.User.id).filter(models.User.national_id == payload.national_id).first():
        raise Conflict("User with this national ID already exists")

    user = models.User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        national_id=payload.national_id,
        is_blocked=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    return schemas.TokenResponse(
        access_token=create_access_token(user=user),
        user=schemas.UserRead.model_validate(user),
    )


@router.post("/auth/login", response_model=schemas.TokenResponse, dependencies=[Depends(rate_limit("login"))])
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    user = db.query(models.User).filter(models.User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationRequired("Invalid credentials")
    if user.is_blocked:
        raise AccessDenied("Your account has been blocked. Please contact support.")

    return schemas.TokenResponse(
        access_token=create_access_token(user=user),
        user=schemas.UserRead.model_validate(user),
    )


@router.get("/auth/me", response_model=schemas.UserRead)
def me(user: models.User = Depends(get_current_user)) -> models.User:
    return user
