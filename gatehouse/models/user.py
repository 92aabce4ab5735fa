"""User and credential models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class UserStatus(str, Enum):
    """Presence status of a user."""

    OFFLINE = "offline"
    ONLINE = "online"
    AWAY = "away"
    DO_NOT_DISTURB = "do_not_disturb"

    @property
    def is_active(self) -> bool:
        """Whether the status counts as recent activity."""
        return self is not UserStatus.OFFLINE


class User(BaseModel):
    """A registered user. Never carries credential material."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "admin"
    online_status: UserStatus = UserStatus.OFFLINE
    last_active_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class Credential(BaseModel):
    """Salt and derived hash stored on the user row."""

    salt: bytes
    hash: bytes


def user_from_row(row) -> User:
    """Build a User from an asyncpg record of the users table."""
    return User(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        role=row["role"],
        online_status=UserStatus(row["online_status"]),
        last_active_at=row["last_active_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
