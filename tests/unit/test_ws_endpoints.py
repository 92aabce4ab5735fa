"""Unit tests for the presence WebSocket endpoints.

Sessions run inside the TestClient event loop; the bus is reached through
``client.portal`` so events are published on that loop.
"""

from contextlib import ExitStack
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import MockConnection, MockPool, make_user_row
from gatehouse.main import app
from gatehouse.models.presence import PresenceEvent
from gatehouse.models.user import UserStatus, user_from_row

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def user():
    return user_from_row(make_user_row(online_status="away"))


@pytest.fixture
def presence(user):
    """Patch auth and storage for both the routes and the sessions.

    Yields the UserService mock used by the sessions.
    """
    pool = MockPool(MockConnection())
    with ExitStack() as stack:
        auth = stack.enter_context(patch("gatehouse.api.ws.AuthService"))
        auth.return_value.resolve_session = AsyncMock(return_value=user)

        stack.enter_context(patch("gatehouse.api.ws.get_pool", new_callable=AsyncMock, return_value=pool))
        route_users = stack.enter_context(patch("gatehouse.api.ws.UserService"))
        route_users.return_value.get_by_id = AsyncMock(return_value=user)

        stack.enter_context(
            patch("gatehouse.services.presence_service.get_pool", new_callable=AsyncMock, return_value=pool)
        )
        session_users = stack.enter_context(patch("gatehouse.services.presence_service.UserService"))
        session_users.return_value.get_by_id = AsyncMock(return_value=user)
        session_users.return_value.update_status = AsyncMock()

        yield session_users.return_value


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestAuthentication:
    def test_me_status_without_session_closes_with_policy_violation(self, client):
        with patch("gatehouse.api.ws.AuthService") as MockAuthService:
            MockAuthService.return_value.resolve_session = AsyncMock(return_value=None)

            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/api/ws/user/me/status"):
                    pass

        assert exc_info.value.code == 1008

    def test_observer_of_unknown_user_is_rejected(self, client, presence):
        with patch("gatehouse.api.ws.UserService") as MockUserService:
            MockUserService.return_value.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect(f"/api/ws/user/status?id={uuid4()}"):
                    pass

        assert exc_info.value.code == 1008


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------

class TestObserver:
    def test_snapshot_then_only_target_changes(self, client, presence, user):
        bus = app.state.presence_bus
        with client.websocket_connect(f"/api/ws/user/status?id={user.id}") as ws:
            assert ws.receive_json() == {"onlineStatus": "away"}

            client.portal.call(
                bus.publish, PresenceEvent(user_id=uuid4(), new_status=UserStatus.ONLINE)
            )
            client.portal.call(
                bus.publish, PresenceEvent(user_id=user.id, new_status=UserStatus.DO_NOT_DISTURB)
            )

            assert ws.receive_json() == {"onlineStatus": "do_not_disturb"}


# ---------------------------------------------------------------------------
# Self reporter
# ---------------------------------------------------------------------------

class TestSelfReporter:
    def test_greeting_is_user_id(self, client, presence, user):
        with client.websocket_connect("/api/ws/user/me/status") as ws:
            assert ws.receive_json() == str(user.id)

    def test_invalid_message_gets_error_and_close_1003(self, client, presence, user):
        with client.websocket_connect("/api/ws/user/me/status") as ws:
            ws.receive_json()
            ws.send_json({"onlineStatus": "away"})
            ws.send_text("not json")

            assert ws.receive_json()["errorMessage"] == "Invalid status message"
            message = ws.receive()
            assert message["type"] == "websocket.close"
            assert message["code"] == 1003

        statuses = [c.args[2] for c in presence.update_status.await_args_list]
        assert statuses == [UserStatus.AWAY, UserStatus.OFFLINE]

    def test_status_reaches_observer_of_same_user(self, client, presence, user):
        with client.websocket_connect(f"/api/ws/user/status?id={user.id}") as observer:
            assert observer.receive_json() == {"onlineStatus": "away"}

            with client.websocket_connect("/api/ws/user/me/status") as reporter:
                reporter.receive_json()
                reporter.send_json({"onlineStatus": "online"})

                assert observer.receive_json() == {"onlineStatus": "online"}

            # The reporter disconnecting marks the user offline
            assert observer.receive_json() == {"onlineStatus": "offline"}
