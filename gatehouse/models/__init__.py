"""Models package exports."""

from gatehouse.models.activity import Activity, ActivityAction, ActivityEntry
from gatehouse.models.presence import PresenceEvent, StatusMessage, StatusUpdateMessage
from gatehouse.models.response import ErrorResponse, Metadata
from gatehouse.models.token import Session, SessionWithToken, Token, TokenKind
from gatehouse.models.user import Credential, User, UserStatus

__all__ = [
    "Activity",
    "ActivityAction",
    "ActivityEntry",
    "Credential",
    "ErrorResponse",
    "Metadata",
    "PresenceEvent",
    "Session",
    "SessionWithToken",
    "StatusMessage",
    "StatusUpdateMessage",
    "Token",
    "TokenKind",
    "User",
    "UserStatus",
]
