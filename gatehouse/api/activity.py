"""Activity (audit trail) listing."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from gatehouse.api.dependencies import get_current_user
from gatehouse.database import get_pool
from gatehouse.models.response import Metadata, envelope
from gatehouse.models.user import User
from gatehouse.services.activity_service import ActivityService

router = APIRouter(prefix="/activity", tags=["Activity"])


@router.get("")
async def list_activity(
    user_id: Optional[UUID] = Query(default=None, alias="userId"),
    limit: int = Query(default=20, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    current_user: User = Depends(get_current_user),
) -> dict:
    """One page of actions performed by a user, newest first.

    ``userId`` defaults to the caller. ``page`` is 1-based.
    """
    activity_service = ActivityService()
    target = user_id or current_user.id
    offset = (page - 1) * limit
    pool = await get_pool()

    async with pool.acquire() as conn:
        entries = await activity_service.list_for_user(conn, target, limit, offset)
        total = await activity_service.count_for_user(conn, target)

    metadata = Metadata(total_count=total)
    if entries:
        metadata.first_index_on_page = offset + 1
        metadata.last_index_on_page = offset + len(entries)

    return envelope(
        metadata,
        activity=[entry.model_dump(mode="json", by_alias=True) for entry in entries],
    )
