"""Authentication API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response

from gatehouse.api.dependencies import (
    RequestContext,
    get_optional_user,
    get_request_context,
    get_session_token,
)
from gatehouse.api.errors import error_response, public_message
from gatehouse.config import SESSION_COOKIE, get_settings
from gatehouse.errors import NotFound
from gatehouse.models.auth import LoginRequest
from gatehouse.models.response import envelope
from gatehouse.models.user import User
from gatehouse.services.auth_service import AuthService
from gatehouse.services.token_service import SESSION_TOKEN_LIFETIME

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def set_session_cookie(response: Response, value: str) -> None:
    """Attach the session cookie to a response."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=value,
        max_age=int(SESSION_TOKEN_LIFETIME.total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=get_settings().session_cookie_secure,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE, path="/", httponly=True, samesite="lax")


@router.get("/check")
async def check(user: Optional[User] = Depends(get_optional_user)) -> dict:
    """Report whether the caller is authenticated."""
    return envelope(authenticated=user is not None)


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    context: RequestContext = Depends(get_request_context),
) -> dict:
    """Login with email and password.

    On success the session token is set as an httponly cookie.

    Raises:
        InvalidCredentials: 401 for an unknown email or wrong password
        SessionCreateFailed: 500 if the session could not be stored
    """
    auth_service = AuthService()
    user, session = await auth_service.login(
        request.email,
        request.password,
        context.ip_address,
        context.user_agent,
    )

    set_session_cookie(response, session.token.value)
    logger.info("user_logged_in", user_id=str(user.id))
    return envelope(success=True)


@router.post("/logout")
async def logout(
    response: Response,
    session_token: Optional[str] = Depends(get_session_token),
    context: RequestContext = Depends(get_request_context),
):
    """Delete the current session and clear the cookie.

    Without a cookie there is nothing to delete and the call succeeds. A
    cookie whose token is already gone yields 404, and the cookie is still
    cleared.
    """
    if not session_token:
        clear_session_cookie(response)
        return envelope(success=True)

    auth_service = AuthService()
    try:
        await auth_service.logout(session_token, context.ip_address, context.user_agent)
    except NotFound as e:
        logger.info("logout_token_not_found")
        failed = error_response(404, public_message(e))
        clear_session_cookie(failed)
        return failed

    clear_session_cookie(response)
    return envelope(success=True)
