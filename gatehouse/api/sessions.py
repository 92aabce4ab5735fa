"""Session management endpoints for the logged-in user."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends

from gatehouse.api.dependencies import get_current_user, get_session_token
from gatehouse.database import get_pool
from gatehouse.models.response import envelope
from gatehouse.models.token import SessionWithToken
from gatehouse.models.user import User
from gatehouse.services.session_service import SessionService
from gatehouse.services.token_service import hash_token_value

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def _session_item(entry: SessionWithToken, current_hash: Optional[str]) -> dict:
    """Public view of a session. Neither the token nor its hash is returned."""
    return {
        "id": entry.session.id,
        "userAgent": entry.session.user_agent,
        "ipAddress": entry.session.ip_address,
        "createdAt": entry.session.created_at.isoformat(),
        "expiration": entry.token.expiration.isoformat() if entry.token.expiration else None,
        "current": entry.token.token_hash == current_hash,
    }


@router.get("")
async def list_sessions(
    current_user: User = Depends(get_current_user),
    session_token: Optional[str] = Depends(get_session_token),
) -> dict:
    """List the caller's sessions, newest first."""
    session_service = SessionService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        sessions = await session_service.list_for_user(conn, current_user.id)

    current_hash = hash_token_value(session_token) if session_token else None
    return envelope(sessions=[_session_item(s, current_hash) for s in sessions])


@router.delete("/{session_id}")
async def delete_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Revoke one of the caller's sessions together with its token.

    Raises:
        NotFound: 404 if the session does not exist
        Forbidden: 403 if it belongs to another user
    """
    session_service = SessionService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        await session_service.delete_by_id_for_user(conn, session_id, current_user.id)

    return envelope(deleted=True)
