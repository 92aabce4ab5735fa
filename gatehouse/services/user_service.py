"""User lookups and the user-row updates the auth core needs."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog
from starlette.concurrency import run_in_threadpool

from gatehouse.database import translate_database_errors
from gatehouse.errors import NotFound
from gatehouse.models.token import TokenKind
from gatehouse.models.user import Credential, User, UserStatus, user_from_row
from gatehouse.services import password_hasher
from gatehouse.services.token_service import hash_token_value

logger = structlog.get_logger(__name__)

_USER_COLUMNS = (
    "id, email, first_name, last_name, role, online_status, last_active_at, "
    "created_at, updated_at"
)


class UserService:
    """Service for the user rows behind authentication and presence."""

    @translate_database_errors
    async def create_user(
        self,
        conn: asyncpg.Connection,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: str = "admin",
    ) -> User:
        """Create a new user with a freshly salted password hash.

        Args:
            conn: Database connection
            email: Unique email address
            password: Plain-text password (will be hashed)
            first_name: Optional given name
            last_name: Optional family name
            role: Role label

        Returns:
            Created User model
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)
        salt, hash_ = await run_in_threadpool(password_hasher.derive, password)

        row = await conn.fetchrow(
            f"""
            INSERT INTO users (id, email, first_name, last_name, role, salt, hash, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
            RETURNING {_USER_COLUMNS}
            """,
            user_id,
            email,
            first_name,
            last_name,
            role,
            salt,
            hash_,
            now,
        )

        logger.info("user_created", user_id=str(user_id), role=role)
        return user_from_row(row)

    @translate_database_errors
    async def get_by_id(self, conn: asyncpg.Connection, user_id: UUID) -> Optional[User]:
        """Get a user by UUID, or None if not found."""
        row = await conn.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return user_from_row(row) if row else None

    @translate_database_errors
    async def get_with_credential_by_email(
        self, conn: asyncpg.Connection, email: str
    ) -> Optional[tuple[User, Credential]]:
        """Get a user and their credential by email (case-insensitive).

        Returns:
            Tuple of (User, Credential) or None if not found
        """
        row = await conn.fetchrow(
            f"""
            SELECT {_USER_COLUMNS}, salt, hash
            FROM users
            WHERE LOWER(email) = LOWER($1)
            """,
            email,
        )
        if row is None:
            return None
        return user_from_row(row), Credential(salt=row["salt"], hash=row["hash"])

    @translate_database_errors
    async def get_by_email(self, conn: asyncpg.Connection, email: str) -> Optional[User]:
        """Get a user by email (case-insensitive), or None if not found."""
        row = await conn.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER($1)",
            email,
        )
        return user_from_row(row) if row else None

    @translate_database_errors
    async def get_credential(
        self, conn: asyncpg.Connection, user_id: UUID
    ) -> Optional[Credential]:
        """Get the stored salt and hash of a user."""
        row = await conn.fetchrow("SELECT salt, hash FROM users WHERE id = $1", user_id)
        if row is None:
            return None
        return Credential(salt=row["salt"], hash=row["hash"])

    @translate_database_errors
    async def get_by_token(
        self, conn: asyncpg.Connection, value: str, kind: TokenKind
    ) -> Optional[User]:
        """Resolve the owner of a non-expired token of the given kind.

        Args:
            conn: Database connection
            value: Token value presented by the client
            kind: Token kind the value must have

        Returns:
            Owning User, or None if the token is unknown, expired or of another kind
        """
        row = await conn.fetchrow(
            f"""
            SELECT {", ".join(f"u.{c.strip()}" for c in _USER_COLUMNS.split(","))}
            FROM tokens t
            JOIN users u ON u.id = t.user_id
            WHERE t.token_hash = $1
              AND t.kind = $2
              AND (t.expiration IS NULL OR t.expiration > NOW())
            """,
            hash_token_value(value),
            kind.value,
        )
        return user_from_row(row) if row else None

    @translate_database_errors
    async def update_credential(
        self, conn: asyncpg.Connection, user_id: UUID, salt: bytes, hash_: bytes
    ) -> User:
        """Store a new salt and hash for the user.

        Raises:
            NotFound: If the user does not exist
        """
        row = await conn.fetchrow(
            f"""
            UPDATE users SET salt = $1, hash = $2, updated_at = $3
            WHERE id = $4
            RETURNING {_USER_COLUMNS}
            """,
            salt,
            hash_,
            datetime.now(timezone.utc),
            user_id,
        )
        if row is None:
            raise NotFound("User not found")
        logger.info("user_credential_updated", user_id=str(user_id))
        return user_from_row(row)

    @translate_database_errors
    async def update_status(
        self,
        conn: asyncpg.Connection,
        user_id: UUID,
        status: UserStatus,
        last_active_at: Optional[datetime] = None,
    ) -> None:
        """Persist a user's presence status.

        ``last_active_at`` is only written when given; otherwise the stored
        value is kept.
        """
        if last_active_at is not None:
            await conn.execute(
                "UPDATE users SET online_status = $1, last_active_at = $2 WHERE id = $3",
                status.value,
                last_active_at,
                user_id,
            )
        else:
            await conn.execute(
                "UPDATE users SET online_status = $1 WHERE id = $2",
                status.value,
                user_id,
            )
        logger.debug("user_status_updated", user_id=str(user_id), status=status.value)

    @translate_database_errors
    async def count_users(self, conn: asyncpg.Connection, lock: bool = False) -> int:
        """Count total number of users.

        With ``lock`` set (inside a transaction), concurrent writers to the
        users table wait until the transaction ends.
        """
        if lock:
            await conn.execute("LOCK TABLE users IN SHARE ROW EXCLUSIVE MODE")
        count = await conn.fetchval("SELECT COUNT(*) FROM users")
        return count or 0
