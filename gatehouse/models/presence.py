"""Presence events and realtime message formats."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gatehouse.models.user import UserStatus


class PresenceEvent(BaseModel):
    """A change of one user's status, carried only on the presence bus.

    Attributes:
        user_id: User whose status changed
        new_status: Status after the change
        origin: Connection id of the publisher, never sent to peers
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    new_status: UserStatus
    origin: Optional[str] = None


class StatusMessage(BaseModel):
    """Outbound message sent to presence peers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    online_status: UserStatus
    last_active_at: Optional[datetime] = None

    def to_wire(self) -> dict:
        """JSON-ready dict, omitting lastActiveAt when unknown."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusUpdateMessage(BaseModel):
    """Inbound message from a self-reporting peer."""

    model_config = ConfigDict(extra="ignore")

    online_status: UserStatus = Field(..., alias="onlineStatus")
