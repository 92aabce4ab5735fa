"""Authentication flows: login, logout, password reset and password change.

Each flow commits its primary writes first, then records an activity entry.
Activity writes are best-effort: a failure is logged and never undoes or
fails the flow.
"""

from typing import Optional
from uuid import UUID

import structlog
from starlette.concurrency import run_in_threadpool

from gatehouse.config import get_settings
from gatehouse.database import DATABASE_EXCEPTIONS, get_pool, translate_database_errors
from gatehouse.errors import DatabaseError, InvalidCredentials, NotFound, SessionCreateFailed
from gatehouse.models.activity import (
    ActivityEntry,
    LoginActivity,
    LogoutActivity,
    PasswordChangeActivity,
    PasswordResetActivity,
    PasswordResetRequestActivity,
)
from gatehouse.models.token import SessionWithToken, Token, TokenKind
from gatehouse.models.user import User
from gatehouse.services import password_hasher
from gatehouse.services.activity_service import ActivityService
from gatehouse.services.email_service import EmailService
from gatehouse.services.session_service import SessionService
from gatehouse.services.token_service import TokenService
from gatehouse.services.user_service import UserService

logger = structlog.get_logger(__name__)

# Verified against when the email is unknown so both failures cost the same
_DUMMY_SALT = bytes(password_hasher.SALT_LENGTH)
_DUMMY_HASH = bytes(password_hasher.CREDENTIAL_LENGTH)


class AuthService:
    """Orchestrates the credential, session, token and activity services."""

    def __init__(
        self,
        user_service: Optional[UserService] = None,
        token_service: Optional[TokenService] = None,
        session_service: Optional[SessionService] = None,
        activity_service: Optional[ActivityService] = None,
        email_service: Optional[EmailService] = None,
    ):
        self.settings = get_settings()
        self.user_service = user_service or UserService()
        self.token_service = token_service or TokenService()
        self.session_service = session_service or SessionService(self.token_service)
        self.activity_service = activity_service or ActivityService()
        self.email_service = email_service or EmailService()

    async def _record_activity(self, conn, entry: ActivityEntry) -> None:
        try:
            await self.activity_service.record(conn, entry)
        except DatabaseError as e:
            logger.warning(
                "activity_record_failed",
                action=entry.action.value,
                error=str(e.__cause__ or e),
            )

    @translate_database_errors
    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str],
        user_agent: str,
    ) -> tuple[User, SessionWithToken]:
        """Verify credentials and open a new session.

        Args:
            email: Account email (case-insensitive)
            password: Plain-text password
            ip_address: Client address, if known
            user_agent: Client User-Agent header

        Returns:
            Tuple of (User, SessionWithToken)

        Raises:
            InvalidCredentials: Unknown email or wrong password (indistinguishable)
            SessionCreateFailed: Credentials were valid but storing the session failed
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            found = await self.user_service.get_with_credential_by_email(conn, email)

            if found is None:
                await run_in_threadpool(password_hasher.verify, password, _DUMMY_SALT, _DUMMY_HASH)
                logger.info("login_failed", reason="unknown_email")
                raise InvalidCredentials()

            user, credential = found
            matches = await run_in_threadpool(
                password_hasher.verify, password, credential.salt, credential.hash
            )
            if not matches:
                logger.info("login_failed", reason="wrong_password", user_id=str(user.id))
                raise InvalidCredentials()

            try:
                session = await self.session_service.create_with_token(
                    conn, user, ip_address, user_agent
                )
            except Exception as e:
                logger.error("session_create_failed", user_id=str(user.id), error=str(e))
                raise SessionCreateFailed() from e

            await self._record_activity(
                conn,
                LoginActivity(action_by_id=user.id, ip_address=ip_address, user_agent=user_agent),
            )

        logger.info("login_succeeded", user_id=str(user.id), session_id=session.session.id)
        return user, session

    @translate_database_errors
    async def logout(
        self,
        token_value: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Delete the session owning ``token_value``.

        Raises:
            NotFound: If the token is already gone (a second logout fails)
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            user = await self.user_service.get_by_token(conn, token_value, TokenKind.SESSION)
            await self.session_service.delete_by_token_value(conn, token_value)

            if user is not None:
                await self._record_activity(
                    conn,
                    LogoutActivity(
                        action_by_id=user.id, ip_address=ip_address, user_agent=user_agent
                    ),
                )

        logger.info("logout_succeeded", user_id=str(user.id) if user else None)

    @translate_database_errors
    async def request_password_reset(
        self,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Create a reset token for ``email`` and mail the link.

        Returns normally whether or not the email belongs to a user, and
        whether or not delivery succeeded.
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            user = await self.user_service.get_by_email(conn, email)
            if user is None:
                logger.info("password_reset_requested", known_user=False)
                return
            token = await self.token_service.create_password_reset_token(conn, user.id)

        sent = await self.email_service.send_password_reset_email(user.email, token.value)
        if not sent:
            logger.warning("password_reset_email_not_delivered", user_id=str(user.id))

        async with pool.acquire() as conn:
            await self._record_activity(
                conn,
                PasswordResetRequestActivity(
                    item_id=user.id, ip_address=ip_address, user_agent=user_agent
                ),
            )

        logger.info("password_reset_requested", known_user=True, user_id=str(user.id))

    async def _valid_reset_token(
        self, conn, value: str, for_update: bool = False
    ) -> Optional[Token]:
        """Return the reset token if usable; delete it if it has expired."""
        try:
            token = await self.token_service.get_by_value(conn, value, for_update=for_update)
        except NotFound:
            return None

        if token.kind is not TokenKind.PASSWORD_RESET:
            return None

        if token.is_expired():
            try:
                await self.token_service.delete_by_id(
                    conn, token.id, token.user_id, kind=TokenKind.PASSWORD_RESET
                )
            except NotFound:
                pass
            logger.info("password_reset_token_expired", token_id=token.id)
            return None

        return token

    @translate_database_errors
    async def check_password_reset_token(self, value: str) -> bool:
        """Whether ``value`` is a live password reset token."""
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await self._valid_reset_token(conn, value) is not None

    @translate_database_errors
    async def reset_password(
        self,
        value: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Consume a reset token and set a new password.

        The token row is locked for the whole transaction, so two concurrent
        consumes of one token cannot both succeed.

        Returns:
            True if the password was changed, False if the token is invalid
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                token = await self._valid_reset_token(conn, value, for_update=True)
                if token is None:
                    return False

                credential = await self.user_service.get_credential(conn, token.user_id)
                if credential is None:
                    raise NotFound("User not found")

                salt, hash_ = await run_in_threadpool(
                    password_hasher.derive, new_password, credential.salt
                )
                await self.user_service.update_credential(conn, token.user_id, salt, hash_)
                await self.token_service.delete_by_id(
                    conn, token.id, token.user_id, kind=TokenKind.PASSWORD_RESET
                )

            await self._record_activity(
                conn,
                PasswordResetActivity(
                    item_id=token.user_id, ip_address=ip_address, user_agent=user_agent
                ),
            )

        logger.info("password_reset_completed", user_id=str(token.user_id))
        return True

    @translate_database_errors
    async def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """Change a password after re-verifying the current one.

        Raises:
            InvalidCredentials: Unknown user or wrong current password
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            credential = await self.user_service.get_credential(conn, user_id)
            if credential is None:
                raise InvalidCredentials()

            matches = await run_in_threadpool(
                password_hasher.verify, current_password, credential.salt, credential.hash
            )
            if not matches:
                logger.info("password_change_failed", user_id=str(user_id))
                raise InvalidCredentials()

            salt, hash_ = await run_in_threadpool(
                password_hasher.derive, new_password, credential.salt
            )
            user = await self.user_service.update_credential(conn, user_id, salt, hash_)

            await self._record_activity(
                conn,
                PasswordChangeActivity(
                    item_id=user_id,
                    action_by_id=user_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                ),
            )

        logger.info("password_changed", user_id=str(user_id))
        return user

    async def _resolve(self, token_value: Optional[str], kind: TokenKind) -> Optional[User]:
        if not token_value:
            return None
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await self.user_service.get_by_token(conn, token_value, kind)
        except (DatabaseError, *DATABASE_EXCEPTIONS) as e:
            logger.warning("token_resolve_failed", kind=kind.value, error=str(e))
            return None

    async def resolve_session(self, token_value: Optional[str]) -> Optional[User]:
        """Owner of a live session token, or None.

        Never raises: missing, unknown, expired or wrong-kind tokens and
        datastore failures all mean "no user".
        """
        return await self._resolve(token_value, TokenKind.SESSION)

    async def resolve_access_token(self, token_value: Optional[str]) -> Optional[User]:
        """Owner of a static access token, or None. Never raises."""
        return await self._resolve(token_value, TokenKind.STATIC_ACCESS)
