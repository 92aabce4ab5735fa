"""Activity (audit trail) models.

Each entry variant maps to one fixed action label and carries only the
fields that action records. ``ActivityService.record`` stores any variant.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ActivityAction(str, Enum):
    """Action labels stored in the activity table."""

    LOGIN = "login"
    LOGOUT = "logout"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    HARD_DELETE = "hard_delete"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET = "password_reset"
    COMMENT = "comment"


class ActivityEntry(BaseModel):
    """Base for activity entry inputs."""

    model_config = ConfigDict(frozen=True)

    action: ClassVar[ActivityAction]

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def columns(self) -> dict:
        """Column values for the activity table, missing ones as None."""
        data = self.model_dump()
        if isinstance(data.get("item_id"), UUID):
            data["item_id"] = str(data["item_id"])
        return {
            "action": self.action.value,
            "action_by_id": data.get("action_by_id"),
            "ip_address": data.get("ip_address"),
            "user_agent": data.get("user_agent"),
            "table_name": data.get("table_name"),
            "item_id": data.get("item_id"),
            "old_data": data.get("old_data"),
            "new_data": data.get("new_data"),
        }


class LoginActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.LOGIN

    action_by_id: UUID


class LogoutActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.LOGOUT

    action_by_id: UUID


class CreateActivity(ActivityEntry):
    """Creation of a row. ``new_data`` is JSON without secrets."""

    action: ClassVar[ActivityAction] = ActivityAction.CREATE

    action_by_id: UUID
    table_name: str
    item_id: str
    new_data: str


class UpdateActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.UPDATE

    action_by_id: UUID
    table_name: str
    item_id: str
    old_data: str
    new_data: str


class DeleteActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.DELETE

    action_by_id: UUID
    table_name: str
    item_id: str


class HardDeleteActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.HARD_DELETE

    action_by_id: UUID
    table_name: str
    item_id: str


class PasswordChangeActivity(ActivityEntry):
    """A logged-in user changed a password.

    Attributes:
        item_id: User whose password changed
        action_by_id: User who made the change
    """

    action: ClassVar[ActivityAction] = ActivityAction.PASSWORD_CHANGE

    item_id: UUID
    action_by_id: UUID


class PasswordResetRequestActivity(ActivityEntry):
    """Unauthenticated reset request. ``item_id`` is the target user."""

    action: ClassVar[ActivityAction] = ActivityAction.PASSWORD_RESET_REQUEST

    item_id: UUID


class PasswordResetActivity(ActivityEntry):
    """Unauthenticated reset completion. ``item_id`` is the target user."""

    action: ClassVar[ActivityAction] = ActivityAction.PASSWORD_RESET

    item_id: UUID


class CommentActivity(ActivityEntry):
    action: ClassVar[ActivityAction] = ActivityAction.COMMENT

    action_by_id: UUID
    table_name: str
    item_id: str
    new_data: str


class Activity(BaseModel):
    """A stored activity row."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    action: ActivityAction
    action_by_id: Optional[UUID] = None
    action_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    table_name: Optional[str] = None
    item_id: Optional[str] = None
    old_data: Optional[str] = None
    new_data: Optional[str] = None


def activity_from_row(row) -> Activity:
    """Build an Activity from an asyncpg record of the activity table."""
    return Activity(
        id=row["id"],
        action=ActivityAction(row["action"]),
        action_by_id=row["action_by_id"],
        action_at=row["action_at"],
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        table_name=row["table_name"],
        item_id=row["item_id"],
        old_data=row["old_data"],
        new_data=row["new_data"],
    )
