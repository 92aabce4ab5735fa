"""Mapping of domain errors to HTTP responses."""

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gatehouse.errors import (
    Conflict,
    DatabaseError,
    Forbidden,
    GatehouseError,
    InternalServerError,
    InvalidCredentials,
    NotFound,
    PasswordsDontMatch,
    SessionCreateFailed,
    Unauthorized,
    ValidationFailed,
)
from gatehouse.models.response import ErrorResponse

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES: dict[type[GatehouseError], int] = {
    InvalidCredentials: 401,
    Unauthorized: 401,
    Forbidden: 403,
    NotFound: 404,
    Conflict: 409,
    PasswordsDontMatch: 400,
    ValidationFailed: 400,
    SessionCreateFailed: 500,
    DatabaseError: 500,
    InternalServerError: 500,
}

# Kinds whose message stays generic regardless of what the raiser passed
_FIXED_MESSAGES = (InvalidCredentials, DatabaseError, SessionCreateFailed)


def error_status(error: GatehouseError) -> int:
    """HTTP status for an error, found by walking its class hierarchy."""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def public_message(error: GatehouseError) -> str:
    """Message safe to show the caller."""
    if isinstance(error, InternalServerError):
        if error.expose_detail and error.detail:
            return str(error)
        return InternalServerError.message
    if isinstance(error, _FIXED_MESSAGES):
        return type(error).message
    return error.message


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error_message=message).to_wire(),
    )


async def gatehouse_error_handler(request: Request, exc: GatehouseError) -> JSONResponse:
    """Render a domain error as the error envelope."""
    status_code = error_status(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=status_code,
        error=str(exc),
    )
    return error_response(status_code, public_message(exc))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors as a 400 envelope naming the first bad field."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]) if loc != "body")
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = ValidationFailed.message

    logger.warning("validation_error", path=request.url.path, detail=detail)
    return error_response(400, detail)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Opaque 500 for anything not raised as a domain error."""
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
    return error_response(500, InternalServerError.message)
