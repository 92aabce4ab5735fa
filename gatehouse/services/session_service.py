"""Login sessions, each paired with exactly one session token."""

from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from gatehouse.database import translate_database_errors
from gatehouse.errors import NotFound
from gatehouse.models.token import (
    Session,
    SessionWithToken,
    Token,
    TokenKind,
    session_from_row,
)
from gatehouse.models.user import User
from gatehouse.services.token_service import TokenService

logger = structlog.get_logger(__name__)


class SessionService:
    """Creates and deletes session/token pairs atomically."""

    def __init__(self, token_service: Optional[TokenService] = None):
        self.token_service = token_service or TokenService()

    @translate_database_errors
    async def create_with_token(
        self,
        conn: asyncpg.Connection,
        user: User,
        ip_address: Optional[str],
        user_agent: str,
    ) -> SessionWithToken:
        """Create a session token and its session row in one transaction.

        Args:
            conn: Database connection
            user: User logging in
            ip_address: Client address, if known
            user_agent: Client User-Agent header

        Returns:
            The new session together with its token
        """
        async with conn.transaction():
            token = await self.token_service.create_session_token(conn, user.id)
            row = await conn.fetchrow(
                """
                INSERT INTO sessions (token_id, ip_address, user_agent)
                VALUES ($1, $2, $3)
                RETURNING id, token_id, user_agent, ip_address, created_at
                """,
                token.id,
                ip_address,
                user_agent,
            )

        session = session_from_row(row)
        logger.info(
            "session_created",
            session_id=session.id,
            token_id=token.id,
            user_id=str(user.id),
        )
        return SessionWithToken(session=session, token=token)

    @translate_database_errors
    async def delete_by_token_value(self, conn: asyncpg.Connection, value: str) -> None:
        """Delete a session token and its session in one transaction.

        Tokens of other kinds are never touched by this call.

        Raises:
            NotFound: If no session token has this value (nothing is deleted)
        """
        async with conn.transaction():
            token = await self.token_service.delete_by_value(
                conn, value, kind=TokenKind.SESSION
            )
            await conn.execute("DELETE FROM sessions WHERE token_id = $1", token.id)

        logger.info("session_deleted", token_id=token.id, user_id=str(token.user_id))

    @translate_database_errors
    async def delete_by_id_for_user(
        self, conn: asyncpg.Connection, session_id: int, user_id: UUID
    ) -> None:
        """Delete one of the user's sessions and its token in one transaction.

        Raises:
            NotFound: If the session or its token does not exist
            Forbidden: If the session belongs to another user (rolled back)
        """
        async with conn.transaction():
            token_id = await conn.fetchval(
                "DELETE FROM sessions WHERE id = $1 RETURNING token_id",
                session_id,
            )
            if token_id is None:
                raise NotFound("Session not found")
            await self.token_service.delete_by_id(
                conn, token_id, user_id, kind=TokenKind.SESSION
            )

        logger.info("session_revoked", session_id=session_id, user_id=str(user_id))

    @translate_database_errors
    async def list_for_user(
        self, conn: asyncpg.Connection, user_id: UUID
    ) -> list[SessionWithToken]:
        """List the user's sessions with their tokens, newest first."""
        rows = await conn.fetch(
            """
            SELECT
                s.id AS session_id,
                s.user_agent,
                s.ip_address,
                s.created_at AS session_created_at,
                t.id AS token_id,
                t.name,
                t.token_hash,
                t.kind,
                t.expiration,
                t.user_id,
                t.created_at AS token_created_at,
                t.updated_at AS token_updated_at
            FROM sessions s
            JOIN tokens t ON t.id = s.token_id
            WHERE t.user_id = $1 AND t.kind = $2
            ORDER BY s.created_at DESC
            """,
            user_id,
            TokenKind.SESSION.value,
        )

        return [
            SessionWithToken(
                session=Session(
                    id=row["session_id"],
                    token_id=row["token_id"],
                    user_agent=row["user_agent"],
                    ip_address=row["ip_address"],
                    created_at=row["session_created_at"],
                ),
                token=Token(
                    id=row["token_id"],
                    kind=TokenKind(row["kind"]),
                    token_hash=row["token_hash"],
                    user_id=row["user_id"],
                    name=row["name"],
                    expiration=row["expiration"],
                    created_at=row["token_created_at"],
                    updated_at=row["token_updated_at"],
                ),
            )
            for row in rows
        ]
