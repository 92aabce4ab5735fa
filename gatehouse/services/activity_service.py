"""Append-only activity (audit trail) storage."""

from uuid import UUID

import asyncpg
import structlog

from gatehouse.database import translate_database_errors
from gatehouse.models.activity import Activity, ActivityEntry, activity_from_row

logger = structlog.get_logger(__name__)

_ACTIVITY_COLUMNS = (
    "id, action, action_by_id, action_at, ip_address, user_agent, "
    "table_name, item_id, old_data, new_data"
)


class ActivityService:
    """Records and lists activity entries. Rows are never updated or deleted."""

    @translate_database_errors
    async def record(self, conn: asyncpg.Connection, entry: ActivityEntry) -> Activity:
        """Insert one activity row.

        Args:
            conn: Database connection (may be inside a transaction)
            entry: Any ActivityEntry variant; its class fixes the action label

        Returns:
            The stored Activity
        """
        columns = entry.columns()
        row = await conn.fetchrow(
            f"""
            INSERT INTO activity
                (action, action_by_id, ip_address, user_agent, table_name, item_id, old_data, new_data)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {_ACTIVITY_COLUMNS}
            """,
            columns["action"],
            columns["action_by_id"],
            columns["ip_address"],
            columns["user_agent"],
            columns["table_name"],
            columns["item_id"],
            columns["old_data"],
            columns["new_data"],
        )
        activity = activity_from_row(row)
        logger.info(
            "activity_recorded",
            activity_id=activity.id,
            action=activity.action.value,
            action_by_id=str(activity.action_by_id) if activity.action_by_id else None,
        )
        return activity

    @translate_database_errors
    async def list_for_user(
        self,
        conn: asyncpg.Connection,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> list[Activity]:
        """Return one page of activity performed by the user, newest first."""
        rows = await conn.fetch(
            f"""
            SELECT {_ACTIVITY_COLUMNS} FROM activity
            WHERE action_by_id = $1
            ORDER BY action_at DESC, id DESC
            LIMIT $2 OFFSET $3
            """,
            user_id,
            limit,
            offset,
        )
        return [activity_from_row(row) for row in rows]

    @translate_database_errors
    async def count_for_user(self, conn: asyncpg.Connection, user_id: UUID) -> int:
        """Count activity performed by the user."""
        count = await conn.fetchval(
            "SELECT COUNT(*) FROM activity WHERE action_by_id = $1",
            user_id,
        )
        return count or 0
