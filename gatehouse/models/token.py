"""Token and session models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TokenKind(str, Enum):
    """Kinds of bearer tokens."""

    SESSION = "session"
    PASSWORD_RESET = "password_reset"
    STATIC_ACCESS = "static_access"


class Token(BaseModel):
    """An opaque bearer token owned by one user.

    Attributes:
        id: Row id
        kind: Session, password reset or static access
        token_hash: SHA-256 hex digest of the secret, the only form stored
        value: The secret itself, known only right after creation
        user_id: Owning user
        name: User-supplied label (static access tokens only)
        expiration: None for tokens that never expire
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    kind: TokenKind
    token_hash: str
    value: Optional[str] = None
    user_id: UUID
    name: Optional[str] = None
    expiration: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the token's expiration has passed. Never true without one."""
        if self.expiration is None:
            return False
        return self.expiration < (now or datetime.now(timezone.utc))


class Session(BaseModel):
    """Device metadata for one login, paired 1:1 with a session token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    token_id: int
    user_agent: str
    ip_address: Optional[str] = None
    created_at: datetime


class SessionWithToken(BaseModel):
    """A session together with the token it belongs to."""

    session: Session
    token: Token


def token_from_row(row, value: Optional[str] = None) -> Token:
    """Build a Token from an asyncpg record of the tokens table.

    ``value`` is passed only by the code that just generated the secret.
    """
    return Token(
        id=row["id"],
        kind=TokenKind(row["kind"]),
        token_hash=row["token_hash"],
        value=value,
        user_id=row["user_id"],
        name=row["name"],
        expiration=row["expiration"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def session_from_row(row) -> Session:
    """Build a Session from an asyncpg record of the sessions table."""
    return Session(
        id=row["id"],
        token_id=row["token_id"],
        user_agent=row["user_agent"],
        ip_address=row["ip_address"],
        created_at=row["created_at"],
    )
