"""Per-connection presence sessions.

A presence session binds one accepted WebSocket to the PresenceBus and to the
user store. It runs two duties concurrently:

- inbound: read messages from the peer
- outbound: forward matching bus events to the peer

Whichever duty finishes first ends the session; the other is cancelled and
awaited, and role-specific cleanup always runs, including when the session
task itself is cancelled at shutdown.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from gatehouse.database import get_pool
from gatehouse.models.presence import PresenceEvent, StatusMessage, StatusUpdateMessage
from gatehouse.models.response import ErrorResponse
from gatehouse.models.user import User, UserStatus
from gatehouse.services.presence_bus import PresenceBus, PresenceSubscription
from gatehouse.services.user_service import UserService

logger = structlog.get_logger(__name__)

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_UNSUPPORTED_DATA = 1003
CLOSE_POLICY_VIOLATION = 1008


class PresenceState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class PresenceSession:
    """Base for the observer and self-reporter roles.

    Subclasses implement ``on_open``, ``consume_inbound``, ``forward_event``
    and optionally ``on_close``.
    """

    role = "presence"

    def __init__(
        self,
        websocket: WebSocket,
        bus: PresenceBus,
        user_service: Optional[UserService] = None,
    ):
        self.websocket = websocket
        self.bus = bus
        self.user_service = user_service or UserService()
        self.connection_id = uuid4().hex
        self.state = PresenceState.CONNECTING
        self.close_code = CLOSE_NORMAL

    async def run(self) -> None:
        """Serve the connection until either duty ends, then clean up."""
        subscription = self.bus.subscribe()
        try:
            await self.websocket.accept()
            await self.on_open()
            self.state = PresenceState.ACTIVE
            logger.info("presence_session_opened", role=self.role, connection_id=self.connection_id)
            await self._race_duties(subscription)
        except WebSocketDisconnect:
            pass
        finally:
            self.state = PresenceState.CLOSING
            subscription.close()
            try:
                await self.on_close()
            except Exception:
                logger.exception(
                    "presence_cleanup_failed", role=self.role, connection_id=self.connection_id
                )
            await self._close_socket()
            self.state = PresenceState.CLOSED
            logger.info(
                "presence_session_closed",
                role=self.role,
                connection_id=self.connection_id,
                lagged=subscription.lagged,
            )

    async def _race_duties(self, subscription: PresenceSubscription) -> None:
        inbound = asyncio.create_task(self.consume_inbound())
        outbound = asyncio.create_task(self._forward_outbound(subscription))
        duties = {inbound, outbound}
        try:
            done, _ = await asyncio.wait(duties, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self.state = PresenceState.CLOSING
            for task in duties:
                task.cancel()
            await asyncio.gather(*duties, return_exceptions=True)

        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(
                    "presence_duty_failed",
                    role=self.role,
                    connection_id=self.connection_id,
                    duty="inbound" if task is inbound else "outbound",
                    error_type=type(error).__name__,
                    error=str(error),
                )

    async def _forward_outbound(self, subscription: PresenceSubscription) -> None:
        async for event in subscription:
            await self.forward_event(event)

    async def _close_socket(self) -> None:
        if (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=self.close_code)
            except (RuntimeError, WebSocketDisconnect) as e:
                logger.debug("presence_socket_close_failed", error=str(e))

    async def on_open(self) -> None:
        raise NotImplementedError

    async def consume_inbound(self) -> None:
        raise NotImplementedError

    async def forward_event(self, event: PresenceEvent) -> None:
        raise NotImplementedError

    async def on_close(self) -> None:
        pass


class ObserverSession(PresenceSession):
    """Watches one target user's status.

    Sends a snapshot right after subscribing, then every change of the
    target's status. Inbound messages are ignored.
    """

    role = "observer"

    def __init__(
        self,
        websocket: WebSocket,
        bus: PresenceBus,
        target: User,
        user_service: Optional[UserService] = None,
    ):
        super().__init__(websocket, bus, user_service)
        self.target = target

    async def on_open(self) -> None:
        # Subscribed already, so any change after this read is delivered too
        pool = await get_pool()
        async with pool.acquire() as conn:
            current = await self.user_service.get_by_id(conn, self.target.id)
        if current is not None:
            self.target = current

        snapshot = StatusMessage(
            online_status=self.target.online_status,
            last_active_at=self.target.last_active_at,
        )
        await self.websocket.send_json(snapshot.to_wire())

    async def consume_inbound(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    async def forward_event(self, event: PresenceEvent) -> None:
        if event.user_id != self.target.id:
            return
        await self.websocket.send_json(StatusMessage(online_status=event.new_status).to_wire())


class SelfReporterSession(PresenceSession):
    """Publishes and persists the connection owner's own status."""

    role = "self_reporter"

    def __init__(
        self,
        websocket: WebSocket,
        bus: PresenceBus,
        user: User,
        user_service: Optional[UserService] = None,
    ):
        super().__init__(websocket, bus, user_service)
        self.user = user
        self.last_status = user.online_status

    async def on_open(self) -> None:
        await self.websocket.send_json(str(self.user.id))

    async def consume_inbound(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

            text = message.get("text")
            try:
                if text is None:
                    raise ValueError("Binary frames are not supported")
                update = StatusUpdateMessage.model_validate_json(text)
            except (ValidationError, ValueError) as e:
                logger.warning(
                    "presence_message_invalid",
                    connection_id=self.connection_id,
                    user_id=str(self.user.id),
                    error=str(e),
                )
                error = ErrorResponse(error_message="Invalid status message")
                await self.websocket.send_json(error.to_wire())
                self.close_code = CLOSE_UNSUPPORTED_DATA
                return

            await self.apply_status(update.online_status)

    async def apply_status(self, status: UserStatus) -> None:
        """Persist a reported status, then publish it on the bus."""
        refresh = status.is_active or (
            status is UserStatus.OFFLINE and self.last_status.is_active
        )
        last_active_at = datetime.now(timezone.utc) if refresh else None

        pool = await get_pool()
        async with pool.acquire() as conn:
            await self.user_service.update_status(conn, self.user.id, status, last_active_at)
        self.last_status = status

        receivers = self.bus.publish(
            PresenceEvent(user_id=self.user.id, new_status=status, origin=self.connection_id)
        )
        logger.info(
            "presence_status_updated",
            user_id=str(self.user.id),
            status=status.value,
            last_active_refreshed=refresh,
            receivers=receivers,
        )

    async def forward_event(self, event: PresenceEvent) -> None:
        if event.user_id != self.user.id or event.origin == self.connection_id:
            return
        await self.websocket.send_json(StatusMessage(online_status=event.new_status).to_wire())

    async def on_close(self) -> None:
        self.bus.publish(
            PresenceEvent(
                user_id=self.user.id,
                new_status=UserStatus.OFFLINE,
                origin=self.connection_id,
            )
        )
        self.last_status = UserStatus.OFFLINE

        pool = await get_pool()
        async with pool.acquire() as conn:
            await self.user_service.update_status(
                conn, self.user.id, UserStatus.OFFLINE, datetime.now(timezone.utc)
            )
        logger.info("presence_went_offline", user_id=str(self.user.id))
