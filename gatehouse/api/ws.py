"""Realtime presence WebSocket endpoints."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, WebSocket

from gatehouse.config import SESSION_COOKIE
from gatehouse.database import get_pool
from gatehouse.models.user import User
from gatehouse.services.auth_service import AuthService
from gatehouse.services.presence_service import (
    CLOSE_POLICY_VIOLATION,
    ObserverSession,
    SelfReporterSession,
)
from gatehouse.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/user", tags=["Presence"])


async def _authenticate(websocket: WebSocket) -> Optional[User]:
    """Resolve the session cookie; close the socket with 1008 if it is not valid."""
    auth_service = AuthService()
    user = await auth_service.resolve_session(websocket.cookies.get(SESSION_COOKIE))
    if user is None:
        logger.info("presence_connection_rejected", reason="unauthenticated")
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
    return user


@router.websocket("/status")
async def user_status(websocket: WebSocket, id: UUID = Query(...)):
    """Watch another user's online status."""
    if await _authenticate(websocket) is None:
        return

    user_service = UserService()
    pool = await get_pool()
    async with pool.acquire() as conn:
        target = await user_service.get_by_id(conn, id)

    if target is None:
        logger.info("presence_connection_rejected", reason="unknown_user", target_id=str(id))
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
        return

    session = ObserverSession(websocket, websocket.app.state.presence_bus, target)
    await session.run()


@router.websocket("/me/status")
async def user_me_status(websocket: WebSocket):
    """Report the caller's own online status."""
    user = await _authenticate(websocket)
    if user is None:
        return

    session = SelfReporterSession(websocket, websocket.app.state.presence_bus, user)
    await session.run()
