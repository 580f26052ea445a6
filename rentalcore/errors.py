# Typed domain errors and their translation to HTTP responses.
# Every error carries a closed ErrorKind; the HTTP status comes from a total table keyed by kind.
from __future__ import annotations

import enum
import logging
from typing import Dict

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("rentalcore.errors")


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_IN_STATE = "already_in_state"
    VALIDATION_ERROR = "validation_error"
    AUTHENTICATION_REQUIRED = "authentication_required"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    WRONG_TOKEN_TYPE = "wrong_token_type"
    BUSY = "busy"


HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ALREADY_IN_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHENTICATION_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.EXPIRED_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.WRONG_TOKEN_TYPE: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.BUSY: status.HTTP_429_TOO_MANY_REQUESTS,
}


class DomainError(Exception):
    """Base class for errors raised where an invariant or scope check fails."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    kind = ErrorKind.NOT_FOUND


class AccessDenied(DomainError):
    kind = ErrorKind.ACCESS_DENIED


class Conflict(DomainError):
    kind = ErrorKind.CONFLICT


class InvalidTransition(DomainError):
    kind = ErrorKind.INVALID_TRANSITION


class AlreadyInState(InvalidTransition):
    kind = ErrorKind.ALREADY_IN_STATE


class ValidationError(DomainError):
    kind = ErrorKind.VALIDATION_ERROR


class AuthenticationRequired(DomainError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED


class TokenError(DomainError):
    """Base for bearer token failures; only the three subclasses below are ever raised."""


class InvalidToken(TokenError):
    kind = ErrorKind.INVALID_TOKEN


class ExpiredToken(TokenError):
    kind = ErrorKind.EXPIRED_TOKEN


class WrongTokenType(TokenError):
    kind = ErrorKind.WRONG_TOKEN_TYPE


class Busy(DomainError):
    kind = ErrorKind.BUSY


def error_body(kind: ErrorKind, message: str) -> dict:
    return {"detail": {"error": kind.value, "message": message}}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError) -> JSONResponse:
        status_code = HTTP_STATUS[exc.kind]
        logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.kind.value, exc.message)
        headers = {"Retry-After": "1"} if exc.kind is ErrorKind.BUSY else None
        return JSONResponse(status_code=status_code, content=error_body(exc.kind, exc.message), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = error_body(ErrorKind.VALIDATION_ERROR, "Validation failed")
        body["detail"]["errors"] = jsonable_encoder(exc.errors())
        return JSONResponse(status_code=HTTP_STATUS[ErrorKind.VALIDATION_ERROR], content=body)
