"""Bearer token persistence: session, password reset and static access tokens."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from gatehouse.database import translate_database_errors
from gatehouse.errors import Forbidden, NotFound
from gatehouse.models.token import Token, TokenKind, token_from_row

logger = structlog.get_logger(__name__)

# Constants
SESSION_TOKEN_LIFETIME = timedelta(days=30)
PASSWORD_RESET_TOKEN_LIFETIME = timedelta(minutes=30)
TOKEN_BYTES = 32

_TOKEN_COLUMNS = "id, name, token_hash, kind, expiration, user_id, created_at, updated_at"


def generate_token_value() -> str:
    """Return a URL-safe random token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token_value(value: str) -> str:
    """SHA-256 hex digest stored in place of a token value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class TokenService:
    """Creates, looks up, lists and deletes tokens.

    Every method runs on the connection it is given, which may be inside a
    caller's transaction.
    """

    async def _insert(
        self,
        conn: asyncpg.Connection,
        user_id: UUID,
        kind: TokenKind,
        expiration: Optional[datetime],
        name: Optional[str] = None,
    ) -> Token:
        value = generate_token_value()
        now = datetime.now(timezone.utc)
        row = await conn.fetchrow(
            f"""
            INSERT INTO tokens (name, token_hash, kind, expiration, user_id, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $6)
            RETURNING {_TOKEN_COLUMNS}
            """,
            name,
            hash_token_value(value),
            kind.value,
            expiration,
            user_id,
            now,
        )
        token = token_from_row(row, value=value)
        logger.info(
            "token_created",
            token_id=token.id,
            kind=kind.value,
            user_id=str(user_id),
            expiration=expiration.isoformat() if expiration else None,
        )
        return token

    @translate_database_errors
    async def create_session_token(self, conn: asyncpg.Connection, user_id: UUID) -> Token:
        """Create a session token expiring in 30 days."""
        expiration = datetime.now(timezone.utc) + SESSION_TOKEN_LIFETIME
        return await self._insert(conn, user_id, TokenKind.SESSION, expiration)

    @translate_database_errors
    async def create_password_reset_token(
        self, conn: asyncpg.Connection, user_id: UUID
    ) -> Token:
        """Create a single-use password reset token expiring in 30 minutes."""
        expiration = datetime.now(timezone.utc) + PASSWORD_RESET_TOKEN_LIFETIME
        return await self._insert(conn, user_id, TokenKind.PASSWORD_RESET, expiration)

    @translate_database_errors
    async def create_access_token(
        self, conn: asyncpg.Connection, user_id: UUID, name: str
    ) -> Token:
        """Create a named static access token that never expires."""
        return await self._insert(conn, user_id, TokenKind.STATIC_ACCESS, None, name=name)

    @translate_database_errors
    async def get_by_value(
        self, conn: asyncpg.Connection, value: str, for_update: bool = False
    ) -> Token:
        """Fetch a token by its value.

        Args:
            conn: Connection (inside a transaction when ``for_update`` is set)
            value: Token value presented by the client
            for_update: Lock the row until the transaction ends

        Raises:
            NotFound: If no token has this value
        """
        query = f"SELECT {_TOKEN_COLUMNS} FROM tokens WHERE token_hash = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await conn.fetchrow(query, hash_token_value(value))
        if row is None:
            raise NotFound("Token not found")
        return token_from_row(row)

    @translate_database_errors
    async def delete_by_value(
        self,
        conn: asyncpg.Connection,
        value: str,
        kind: Optional[TokenKind] = None,
    ) -> Token:
        """Delete a token by value and return the deleted row.

        Args:
            conn: Database connection
            value: Token value presented by the client
            kind: Only delete a token of this kind

        Raises:
            NotFound: If no token (of the given kind) has this value
        """
        row = await conn.fetchrow(
            f"""
            DELETE FROM tokens
            WHERE token_hash = $1 AND ($2::text IS NULL OR kind = $2)
            RETURNING {_TOKEN_COLUMNS}
            """,
            hash_token_value(value),
            kind.value if kind else None,
        )
        if row is None:
            raise NotFound("Token not found")
        token = token_from_row(row)
        logger.info("token_deleted", token_id=token.id, kind=token.kind.value)
        return token

    @translate_database_errors
    async def delete_by_id(
        self,
        conn: asyncpg.Connection,
        token_id: int,
        owner_user_id: UUID,
        kind: Optional[TokenKind] = None,
    ) -> int:
        """Delete a token only if it belongs to ``owner_user_id``.

        Args:
            conn: Database connection
            token_id: Id of the token to delete
            owner_user_id: User that must own the token
            kind: Restrict deletion to this token kind

        Returns:
            The deleted token id

        Raises:
            NotFound: If no such token exists (of the given kind)
            Forbidden: If the token belongs to another user
        """
        deleted = await conn.fetchval(
            """
            DELETE FROM tokens
            WHERE id = $1 AND user_id = $2 AND ($3::text IS NULL OR kind = $3)
            RETURNING id
            """,
            token_id,
            owner_user_id,
            kind.value if kind else None,
        )
        if deleted is not None:
            logger.info("token_deleted", token_id=token_id, user_id=str(owner_user_id))
            return deleted

        owner = await conn.fetchval(
            "SELECT user_id FROM tokens WHERE id = $1 AND ($2::text IS NULL OR kind = $2)",
            token_id,
            kind.value if kind else None,
        )
        if owner is None:
            raise NotFound("Token not found")
        logger.warning(
            "token_delete_forbidden",
            token_id=token_id,
            requested_by=str(owner_user_id),
        )
        raise Forbidden()

    @translate_database_errors
    async def list_access_tokens_for_user(
        self, conn: asyncpg.Connection, user_id: UUID
    ) -> list[Token]:
        """Return the user's static access tokens, oldest first."""
        rows = await conn.fetch(
            f"""
            SELECT {_TOKEN_COLUMNS} FROM tokens
            WHERE user_id = $1 AND kind = $2
            ORDER BY created_at ASC
            """,
            user_id,
            TokenKind.STATIC_ACCESS.value,
        )
        return [token_from_row(row) for row in rows]
