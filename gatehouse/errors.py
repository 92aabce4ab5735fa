"""Domain errors raised by services and translated at the API boundary.

Services never let raw asyncpg errors escape: they are converted to
DatabaseError by ``gatehouse.database.translate_database_errors``. The HTTP
status and public message for each kind live in ``gatehouse.api.errors``.
"""

from typing import Optional


class GatehouseError(Exception):
    """Base class for all domain errors."""

    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message


class InvalidCredentials(GatehouseError):
    """Wrong password or unknown identity.

    Both cases share this single kind so callers cannot tell them apart.
    """

    message = "Invalid credentials"


class Unauthorized(GatehouseError):
    """No authenticated user for a route that requires one."""

    message = "Unauthorized"


class Forbidden(GatehouseError):
    """The resource exists but belongs to another user."""

    message = "Forbidden"


class NotFound(GatehouseError):
    """The requested row does not exist."""

    message = "Not found"


class Conflict(GatehouseError):
    message = "Conflict"


class PasswordsDontMatch(GatehouseError):
    message = "Passwords don't match"


class ValidationFailed(GatehouseError):
    message = "Validation failed"


class DatabaseError(GatehouseError):
    """Any underlying datastore failure. Opaque to the caller."""

    message = "Database error"


class SessionCreateFailed(GatehouseError):
    """Credentials were valid but the session or token could not be stored."""

    message = "Creating session failed"


class InternalServerError(GatehouseError):
    """Unexpected failure.

    ``detail`` is always logged. It is echoed to the caller only when the
    raiser marks it safe with ``expose_detail=True``.
    """

    message = "Internal server error"

    def __init__(self, detail: str = "", expose_detail: bool = False):
        super().__init__()
        self.detail = detail
        self.expose_detail = expose_detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message
