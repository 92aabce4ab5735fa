"""Static access token endpoints."""

import structlog
from fastapi import APIRouter, Depends

from gatehouse.api.dependencies import get_current_user
from gatehouse.database import get_pool
from gatehouse.models.auth import CreateAccessTokenRequest
from gatehouse.models.response import envelope
from gatehouse.models.token import TokenKind
from gatehouse.models.user import User
from gatehouse.services.token_service import TokenService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/tokens", tags=["Tokens"])


@router.get("")
async def list_tokens(current_user: User = Depends(get_current_user)) -> dict:
    """List the caller's static access tokens without their values."""
    token_service = TokenService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        tokens = await token_service.list_access_tokens_for_user(conn, current_user.id)

    return envelope(
        tokens=[
            {
                "id": token.id,
                "name": token.name,
                "createdAt": token.created_at.isoformat(),
                "expiration": token.expiration.isoformat() if token.expiration else None,
            }
            for token in tokens
        ]
    )


@router.post("")
async def create_token(
    request: CreateAccessTokenRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Create a static access token. Its value is only ever shown here."""
    token_service = TokenService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        token = await token_service.create_access_token(conn, current_user.id, request.name)

    return envelope(
        created={
            "id": token.id,
            "name": token.name,
            "token": token.value,
            "userId": str(token.user_id),
            "createdAt": token.created_at.isoformat(),
            "updatedAt": token.updated_at.isoformat(),
        }
    )


@router.delete("/{token_id}")
async def delete_token(
    token_id: int,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Revoke one of the caller's static access tokens.

    Session and reset tokens cannot be deleted here.

    Raises:
        NotFound: 404 if no such static access token exists
        Forbidden: 403 if it belongs to another user
    """
    token_service = TokenService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        await token_service.delete_by_id(
            conn, token_id, current_user.id, kind=TokenKind.STATIC_ACCESS
        )

    return envelope(deleted=True)
