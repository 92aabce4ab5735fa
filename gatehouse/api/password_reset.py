"""Password reset API endpoints (unauthenticated)."""

import structlog
from fastapi import APIRouter, Depends, Query

from gatehouse.api.dependencies import RequestContext, get_request_context
from gatehouse.models.auth import PasswordResetBody, PasswordResetRequest
from gatehouse.models.response import envelope
from gatehouse.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/password_reset", tags=["Password reset"])


@router.post("/request")
async def request_reset(
    request: PasswordResetRequest,
    context: RequestContext = Depends(get_request_context),
) -> dict:
    """Email a reset link if the address belongs to a user.

    Always answers ``success: true`` so callers cannot learn which emails
    are registered.
    """
    auth_service = AuthService()
    await auth_service.request_password_reset(
        request.email, context.ip_address, context.user_agent
    )
    return envelope(success=True)


@router.get("/token_check")
async def token_check(token: str = Query(..., min_length=1)) -> dict:
    """Report whether a reset token can still be used."""
    auth_service = AuthService()
    is_valid = await auth_service.check_password_reset_token(token)
    return envelope(is_valid=is_valid)


@router.post("/reset")
async def reset(
    request: PasswordResetBody,
    context: RequestContext = Depends(get_request_context),
) -> dict:
    """Set a new password using a reset token.

    Answers ``success: false`` when the confirmation differs or the token is
    unusable.
    """
    if request.password != request.confirm_password:
        logger.info("password_reset_rejected", reason="confirmation_mismatch")
        return envelope(success=False)

    auth_service = AuthService()
    success = await auth_service.reset_password(
        request.token, request.password, context.ip_address, context.user_agent
    )
    if not success:
        logger.info("password_reset_rejected", reason="invalid_token")
    return envelope(success=success)
