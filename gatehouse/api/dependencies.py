"""FastAPI dependencies for authentication and request metadata."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatehouse.config import SESSION_COOKIE
from gatehouse.errors import Unauthorized
from gatehouse.models.user import User
from gatehouse.services.auth_service import AuthService

# Static access tokens are optional; the session cookie is the usual path
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    """Client metadata recorded with sessions and activity."""

    ip_address: Optional[str]
    user_agent: str


def client_ip(request: Request) -> Optional[str]:
    """Client address, preferring the first X-Forwarded-For hop set by the proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
    )


def get_session_token(
    session: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[str]:
    """Raw session token value from the cookie, if present."""
    return session


async def get_optional_user(
    session_token: Optional[str] = Depends(get_session_token),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    """The authenticated user, or None.

    The session cookie is tried first, then a static access token sent as
    ``Authorization: Bearer``.
    """
    auth_service = AuthService()
    user = await auth_service.resolve_session(session_token)
    if user is None and credentials is not None:
        user = await auth_service.resolve_access_token(credentials.credentials)
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    """The authenticated user.

    Raises:
        Unauthorized: If neither a valid cookie nor a valid bearer token was sent
    """
    if user is None:
        raise Unauthorized()
    return user
