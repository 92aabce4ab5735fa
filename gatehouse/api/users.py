"""User account endpoints."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends

from gatehouse.api.dependencies import RequestContext, get_current_user, get_request_context
from gatehouse.errors import Forbidden, PasswordsDontMatch
from gatehouse.models.auth import UpdatePasswordRequest
from gatehouse.models.response import envelope
from gatehouse.models.user import User
from gatehouse.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.put("/{user_id}/password")
async def update_password(
    user_id: UUID,
    request: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> dict:
    """Change the caller's own password.

    Raises:
        Forbidden: 403 when ``user_id`` is not the caller
        PasswordsDontMatch: 400 if the confirmation differs
        InvalidCredentials: 401 if the current password is wrong
    """
    if user_id != current_user.id:
        logger.warning(
            "password_change_forbidden",
            user_id=str(user_id),
            requested_by=str(current_user.id),
        )
        raise Forbidden()

    if request.new_password != request.confirm_new_password:
        raise PasswordsDontMatch()

    auth_service = AuthService()
    await auth_service.change_password(
        user_id,
        request.current_password,
        request.new_password,
        context.ip_address,
        context.user_agent,
    )
    return envelope(updated=True)
