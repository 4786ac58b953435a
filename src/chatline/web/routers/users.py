from fastapi import APIRouter

from chatline.core.modules.user.models import UserView
from chatline.web.deps import AppDep, AuthTokenDep
from chatline.web.openapi import ErrorResponse

router = APIRouter(tags=["users"])


@router.get(
    "/users",
    summary="List users",
    description="Get every other user with their presence, ordered by username.",
    operation_id="listUsers",
    responses={
        200: {"description": "List of users"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_users(app: AppDep, auth_token: AuthTokenDep) -> list[UserView]:
    return await app.get_users(auth_token)


@router.get(
    "/users/online",
    summary="List online users",
    description="Get other users that currently have a live realtime connection.",
    operation_id="listOnlineUsers",
    responses={
        200: {"description": "List of online users"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_online_users(app: AppDep, auth_token: AuthTokenDep) -> list[UserView]:
    return await app.get_online_users(auth_token)
