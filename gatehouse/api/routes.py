"""Service health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from gatehouse.database import health_check as db_health_check

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format, database state and the number
        of live presence subscribers
    """
    db_healthy = await db_health_check()
    bus = getattr(request.app.state, "presence_bus", None)

    return {
        "status": "healthy" if db_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unhealthy",
        "presenceSubscribers": bus.subscriber_count if bus else 0,
    }
