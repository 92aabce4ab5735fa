"""First-run setup endpoints."""

import structlog
from fastapi import APIRouter, Depends, status

from gatehouse.api.dependencies import RequestContext, get_request_context
from gatehouse.database import get_pool
from gatehouse.errors import Conflict, DatabaseError
from gatehouse.models.activity import CreateActivity
from gatehouse.models.auth import SetupRequest
from gatehouse.models.response import envelope
from gatehouse.services.activity_service import ActivityService
from gatehouse.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/setup", tags=["Setup"])

USERS_TABLE = "users"


@router.get("/is_setup_finished")
async def is_setup_finished() -> dict:
    """Setup is finished once any user exists."""
    user_service = UserService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        count = await user_service.count_users(conn)

    return envelope(is_setup_finished=count > 0)


@router.post("/create_admin_user", status_code=status.HTTP_201_CREATED)
async def create_admin_user(
    request: SetupRequest,
    context: RequestContext = Depends(get_request_context),
) -> dict:
    """Create the initial admin account. Only works while no users exist.

    Raises:
        Conflict: 409 if users already exist
    """
    user_service = UserService()
    activity_service = ActivityService()
    pool = await get_pool()

    async with pool.acquire() as conn:
        async with conn.transaction():
            if await user_service.count_users(conn, lock=True) > 0:
                raise Conflict("Setup already completed")

            user = await user_service.create_user(
                conn,
                email=request.email,
                password=request.password,
                first_name=request.first_name,
                last_name=request.last_name,
                role="admin",
            )

        try:
            await activity_service.record(
                conn,
                CreateActivity(
                    action_by_id=user.id,
                    table_name=USERS_TABLE,
                    item_id=str(user.id),
                    new_data=user.model_dump_json(by_alias=True),
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                ),
            )
        except DatabaseError as e:
            logger.warning("activity_record_failed", action="create", error=str(e.__cause__ or e))

    logger.info("admin_setup_completed", user_id=str(user.id))
    return envelope(created=user.model_dump(mode="json", by_alias=True))
