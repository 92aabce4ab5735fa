"""Unit tests for sessions, tokens, activity, setup and user endpoints.

Authentication is replaced through ``app.dependency_overrides`` and the
pool through a patched ``get_pool``.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from conftest import MockConnection, MockPool, make_token_row, make_user_row
from gatehouse.api.dependencies import get_current_user
from gatehouse.errors import Forbidden, InvalidCredentials, NotFound
from gatehouse.main import app
from gatehouse.models.activity import Activity, ActivityAction
from gatehouse.models.token import SessionWithToken, session_from_row, token_from_row
from gatehouse.models.user import user_from_row

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def current_user():
    return user_from_row(make_user_row())


@pytest.fixture
def authed_client(client, current_user):
    app.dependency_overrides[get_current_user] = lambda: current_user
    yield client
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def conn():
    return MockConnection()


def _pool_patch(module: str, conn):
    return patch(f"gatehouse.api.{module}.get_pool", new_callable=AsyncMock, return_value=MockPool(conn))


def _session_entry(session_id, token_value, user_id):
    token = token_from_row(
        make_token_row(
            token_id=session_id,
            user_id=user_id,
            token_value=token_value,
            expiration=datetime.now(timezone.utc) + timedelta(days=30),
        )
    )
    session = session_from_row(
        {
            "id": session_id,
            "token_id": token.id,
            "user_agent": "Firefox",
            "ip_address": "198.51.100.4",
            "created_at": datetime.now(timezone.utc),
        }
    )
    return SessionWithToken(session=session, token=token)


# ---------------------------------------------------------------------------
# /api/rest/sessions
# ---------------------------------------------------------------------------

class TestSessions:
    def test_list_marks_current_session_and_hides_values(self, authed_client, current_user, conn):
        entries = [
            _session_entry(2, "tok-new", current_user.id),
            _session_entry(1, "tok-old", current_user.id),
        ]
        with (
            _pool_patch("sessions", conn),
            patch("gatehouse.api.sessions.SessionService") as MockSessionService,
        ):
            MockSessionService.return_value.list_for_user = AsyncMock(return_value=entries)
            authed_client.cookies.set("session", "tok-old")

            response = authed_client.get("/api/rest/sessions")

        assert response.status_code == 200
        sessions = response.json()["sessions"]
        assert [s["id"] for s in sessions] == [2, 1]
        assert [s["current"] for s in sessions] == [False, True]
        assert sessions[0]["userAgent"] == "Firefox"
        assert "tok-new" not in response.text

    def test_delete_own_session(self, authed_client, current_user, conn):
        with (
            _pool_patch("sessions", conn),
            patch("gatehouse.api.sessions.SessionService") as MockSessionService,
        ):
            MockSessionService.return_value.delete_by_id_for_user = AsyncMock()

            response = authed_client.delete("/api/rest/sessions/5")

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        MockSessionService.return_value.delete_by_id_for_user.assert_awaited_once_with(
            conn, 5, current_user.id
        )

    def test_delete_foreign_session_is_403(self, authed_client, conn):
        with (
            _pool_patch("sessions", conn),
            patch("gatehouse.api.sessions.SessionService") as MockSessionService,
        ):
            MockSessionService.return_value.delete_by_id_for_user = AsyncMock(side_effect=Forbidden())

            response = authed_client.delete("/api/rest/sessions/5")

        assert response.status_code == 403
        assert response.json()["errorMessage"] == "Forbidden"

    def test_delete_missing_session_is_404(self, authed_client, conn):
        with (
            _pool_patch("sessions", conn),
            patch("gatehouse.api.sessions.SessionService") as MockSessionService,
        ):
            MockSessionService.return_value.delete_by_id_for_user = AsyncMock(
                side_effect=NotFound("Session not found")
            )

            response = authed_client.delete("/api/rest/sessions/5")

        assert response.status_code == 404
        assert response.json()["errorMessage"] == "Session not found"


# ---------------------------------------------------------------------------
# /api/rest/tokens
# ---------------------------------------------------------------------------

class TestTokens:
    def test_create_returns_value_once(self, authed_client, current_user, conn):
        token = token_from_row(
            make_token_row(token_id=9, kind="static_access", user_id=current_user.id, name="ci"),
            value="value-9",
        )
        with (
            _pool_patch("tokens", conn),
            patch("gatehouse.api.tokens.TokenService") as MockTokenService,
        ):
            MockTokenService.return_value.create_access_token = AsyncMock(return_value=token)

            response = authed_client.post("/api/rest/tokens", json={"name": "ci"})

        assert response.status_code == 200
        created = response.json()["created"]
        assert created["token"] == "value-9"
        assert created["name"] == "ci"
        assert created["userId"] == str(current_user.id)

    def test_list_omits_values(self, authed_client, current_user, conn):
        token = token_from_row(
            make_token_row(token_id=9, kind="static_access", user_id=current_user.id, name="ci")
        )
        with (
            _pool_patch("tokens", conn),
            patch("gatehouse.api.tokens.TokenService") as MockTokenService,
        ):
            MockTokenService.return_value.list_access_tokens_for_user = AsyncMock(return_value=[token])

            response = authed_client.get("/api/rest/tokens")

        tokens = response.json()["tokens"]
        assert tokens == [
            {"id": 9, "name": "ci", "createdAt": token.created_at.isoformat(), "expiration": None}
        ]

    def test_delete_only_targets_static_tokens(self, authed_client, current_user, conn):
        with (
            _pool_patch("tokens", conn),
            patch("gatehouse.api.tokens.TokenService") as MockTokenService,
        ):
            MockTokenService.return_value.delete_by_id = AsyncMock()

            response = authed_client.delete("/api/rest/tokens/9")

        assert response.status_code == 200
        kwargs = MockTokenService.return_value.delete_by_id.await_args.kwargs
        assert kwargs["kind"].value == "static_access"

    def test_empty_name_is_400(self, authed_client):
        response = authed_client.post("/api/rest/tokens", json={"name": ""})
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# /api/rest/activity
# ---------------------------------------------------------------------------

class TestActivity:
    def _entries(self, user_id, count):
        now = datetime.now(timezone.utc)
        return [
            Activity(id=i, action=ActivityAction.LOGIN, action_by_id=user_id, action_at=now)
            for i in range(count)
        ]

    def test_second_page_metadata(self, authed_client, current_user, conn):
        with (
            _pool_patch("activity", conn),
            patch("gatehouse.api.activity.ActivityService") as MockActivityService,
        ):
            service = MockActivityService.return_value
            service.list_for_user = AsyncMock(return_value=self._entries(current_user.id, 5))
            service.count_for_user = AsyncMock(return_value=12)

            response = authed_client.get("/api/rest/activity", params={"limit": 5, "page": 2})

        body = response.json()
        assert response.status_code == 200
        assert body["_metadata"]["totalCount"] == 12
        assert body["_metadata"]["firstIndexOnPage"] == 6
        assert body["_metadata"]["lastIndexOnPage"] == 10
        assert body["activity"][0]["action"] == "login"
        assert "actionById" in body["activity"][0]
        service.list_for_user.assert_awaited_once_with(conn, current_user.id, 5, 5)

    def test_empty_page_has_no_indexes(self, authed_client, conn):
        other = uuid4()
        with (
            _pool_patch("activity", conn),
            patch("gatehouse.api.activity.ActivityService") as MockActivityService,
        ):
            service = MockActivityService.return_value
            service.list_for_user = AsyncMock(return_value=[])
            service.count_for_user = AsyncMock(return_value=0)

            response = authed_client.get("/api/rest/activity", params={"userId": str(other)})

        metadata = response.json()["_metadata"]
        assert metadata["totalCount"] == 0
        assert "firstIndexOnPage" not in metadata
        service.list_for_user.assert_awaited_once_with(conn, other, 20, 0)

    def test_limit_above_maximum_is_400(self, authed_client):
        response = authed_client.get("/api/rest/activity", params={"limit": 500})
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# /api/rest/setup
# ---------------------------------------------------------------------------

class TestSetup:
    def test_is_setup_finished(self, client, conn):
        with (
            _pool_patch("setup", conn),
            patch("gatehouse.api.setup.UserService") as MockUserService,
        ):
            MockUserService.return_value.count_users = AsyncMock(return_value=1)

            response = client.get("/api/rest/setup/is_setup_finished")

        assert response.json()["isSetupFinished"] is True

    def test_create_admin_on_empty_store(self, client, conn):
        user = user_from_row(make_user_row(email="root@example.com"))
        with (
            _pool_patch("setup", conn),
            patch("gatehouse.api.setup.UserService") as MockUserService,
            patch("gatehouse.api.setup.ActivityService") as MockActivityService,
        ):
            MockUserService.return_value.count_users = AsyncMock(return_value=0)
            MockUserService.return_value.create_user = AsyncMock(return_value=user)
            MockActivityService.return_value.record = AsyncMock()

            response = client.post(
                "/api/rest/setup/create_admin_user",
                json={"email": "root@example.com", "password": "long-enough", "firstName": "Root"},
            )

        assert response.status_code == 201
        created = response.json()["created"]
        assert created["email"] == "root@example.com"
        assert "hash" not in created and "salt" not in created
        assert conn.commits == 1
        MockUserService.return_value.count_users.assert_awaited_once_with(conn, lock=True)
        entry = MockActivityService.return_value.record.await_args[0][1]
        assert entry.table_name == "users"
        assert entry.item_id == str(user.id)

    def test_create_admin_twice_is_409(self, client, conn):
        with (
            _pool_patch("setup", conn),
            patch("gatehouse.api.setup.UserService") as MockUserService,
        ):
            MockUserService.return_value.count_users = AsyncMock(return_value=1)
            MockUserService.return_value.create_user = AsyncMock()

            response = client.post(
                "/api/rest/setup/create_admin_user",
                json={"email": "root@example.com", "password": "long-enough"},
            )

        assert response.status_code == 409
        assert response.json()["errorMessage"] == "Setup already completed"
        assert conn.rollbacks == 1
        MockUserService.return_value.create_user.assert_not_called()

    def test_email_without_at_sign_is_400(self, client):
        response = client.post(
            "/api/rest/setup/create_admin_user",
            json={"email": "root", "password": "long-enough"},
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# PUT /api/rest/users/{id}/password
# ---------------------------------------------------------------------------

class TestChangePassword:
    def _body(self, confirm="new-secret-1"):
        return {
            "currentPassword": "old-secret",
            "newPassword": "new-secret-1",
            "confirmNewPassword": confirm,
        }

    def test_change_own_password(self, authed_client, current_user):
        with patch("gatehouse.api.users.AuthService") as MockAuthService:
            MockAuthService.return_value.change_password = AsyncMock(return_value=current_user)

            response = authed_client.put(
                f"/api/rest/users/{current_user.id}/password", json=self._body()
            )

        assert response.status_code == 200
        assert response.json()["updated"] is True
        args = MockAuthService.return_value.change_password.await_args[0]
        assert args[:3] == (current_user.id, "old-secret", "new-secret-1")

    def test_other_user_is_403(self, authed_client):
        with patch("gatehouse.api.users.AuthService") as MockAuthService:
            response = authed_client.put(f"/api/rest/users/{uuid4()}/password", json=self._body())

        assert response.status_code == 403
        MockAuthService.assert_not_called()

    def test_mismatched_confirmation_is_400(self, authed_client, current_user):
        response = authed_client.put(
            f"/api/rest/users/{current_user.id}/password", json=self._body(confirm="different-1")
        )

        assert response.status_code == 400
        assert response.json()["errorMessage"] == "Passwords don't match"

    def test_wrong_current_password_is_401(self, authed_client, current_user):
        with patch("gatehouse.api.users.AuthService") as MockAuthService:
            MockAuthService.return_value.change_password = AsyncMock(side_effect=InvalidCredentials())

            response = authed_client.put(
                f"/api/rest/users/{current_user.id}/password", json=self._body()
            )

        assert response.status_code == 401
        assert response.json()["errorMessage"] == "Invalid credentials"
