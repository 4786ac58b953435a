"""Chat and direct message endpoints."""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from chatline.core.modules.message.models import ChatMessageView, DirectMessageView
from chatline.web.deps import AppDep, AuthTokenDep
from chatline.web.openapi import ErrorResponse

router: APIRouter = APIRouter(tags=["messages"])


class SendChatMessageRequest(BaseModel):
    """Request to post to the shared chat."""

    message: str = Field(..., description="Message text, must not be blank")


class SendDirectMessageRequest(BaseModel):
    """Request to send a private message."""

    recipient_id: UUID = Field(..., description="Recipient user ID")
    message: str = Field(..., description="Message text, must not be blank")


@router.get(
    "/messages/chat",
    summary="Chat history",
    description="Get the latest 100 chat messages, oldest first.",
    operation_id="listChatMessages",
    responses={
        200: {"description": "Chat messages"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_chat_messages(app: AppDep, auth_token: AuthTokenDep) -> list[ChatMessageView]:
    return await app.get_chat_messages(auth_token)


@router.post(
    "/messages/chat",
    summary="Send chat message",
    description="Post a message visible to every user. Connected clients receive it over the realtime stream.",
    operation_id="sendChatMessage",
    status_code=201,
    responses={
        201: {"description": "Message stored"},
        400: {"model": ErrorResponse, "description": "Empty message"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def send_chat_message(request: SendChatMessageRequest, app: AppDep, auth_token: AuthTokenDep) -> ChatMessageView:
    return await app.send_chat_message(auth_token, request.message)


@router.get(
    "/messages/direct/{user_id}",
    summary="Direct conversation",
    description=(
        "Get the latest 100 messages exchanged with another user, oldest first. "
        "Messages from that user to you are marked as read."
    ),
    operation_id="listDirectMessages",
    responses={
        200: {"description": "Conversation messages"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def list_direct_messages(user_id: UUID, app: AppDep, auth_token: AuthTokenDep) -> list[DirectMessageView]:
    return await app.get_direct_messages(auth_token, user_id)


@router.post(
    "/messages/direct",
    summary="Send direct message",
    description="Send a private message to another user.",
    operation_id="sendDirectMessage",
    status_code=201,
    responses={
        201: {"description": "Message stored"},
        400: {"model": ErrorResponse, "description": "Empty message or unknown recipient"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def send_direct_message(
    request: SendDirectMessageRequest, app: AppDep, auth_token: AuthTokenDep
) -> DirectMessageView:
    return await app.send_direct_message(auth_token, request.recipient_id, request.message)
