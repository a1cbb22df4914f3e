"""Booking chat API router."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import get_db
from src.modules.chat.constants import MESSAGES_DEFAULT_LIMIT
from src.modules.chat.notifications import get_notification_sink
from src.modules.chat.schemas import (
    ChannelAuthRequest,
    ChannelAuthResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    ThreadResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from src.modules.chat.service import ChatService
from src.modules.chat.storage import get_object_store
from src.modules.chat.task_queue import get_task_queue
from src.modules.identity.auth import AuthenticatedUser, get_current_user

booking_chat_router = APIRouter(prefix="/bookings", tags=["chat"])
router = APIRouter(prefix="/chat", tags=["chat"])
limiter = Limiter(key_func=get_remote_address)


def get_chat_service(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(
        db,
        object_store=get_object_store(),
        notifier=get_notification_sink(),
        task_queue=get_task_queue(),
        config=settings,
    )


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


@booking_chat_router.post("/{booking_id}/chat/open", response_model=ThreadResponse)
async def open_thread(
    booking_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ThreadResponse:
    """Open the booking's chat thread, or return the existing one."""
    thread = await service.open_thread(booking_id, user)
    return ThreadResponse.model_validate(thread)


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ThreadResponse:
    thread = await service.get_thread(thread_id, user)
    return ThreadResponse.model_validate(thread)


@router.patch("/threads/{thread_id}/close", response_model=ThreadResponse)
async def close_thread(
    thread_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ThreadResponse:
    """Request close; media purge and redaction run in the background."""
    thread = await service.close_thread(thread_id, user)
    return ThreadResponse.model_validate(thread)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get("/threads/{thread_id}/messages", response_model=MessageListResponse)
async def list_messages(
    thread_id: uuid.UUID,
    cursor: uuid.UUID | None = Query(None),
    limit: int = Query(MESSAGES_DEFAULT_LIMIT),
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
    messages, next_cursor = await service.list_messages(
        thread_id, user, cursor=cursor, limit=limit
    )
    return MessageListResponse(
        items=[MessageResponse(**service.serialize_message(m)) for m in messages],
        next_cursor=next_cursor,
    )


@router.post("/threads/{thread_id}/messages", response_model=MessageResponse, status_code=201)
@limiter.limit(settings.chat_message_rate_limit)
async def post_message(
    request: Request,
    thread_id: uuid.UUID,
    body: MessageCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> MessageResponse:
    message = await service.post_message(thread_id, user, body.model_dump())
    return MessageResponse(**service.serialize_message(message))


@router.post("/threads/{thread_id}/upload-url", response_model=UploadUrlResponse)
async def create_upload_url(
    thread_id: uuid.UUID,
    body: UploadUrlRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> UploadUrlResponse:
    """Sign a direct upload into the thread's media namespace."""
    signed = await service.create_upload_url(
        thread_id, user, filename=body.filename, content_type=body.content_type
    )
    return UploadUrlResponse(**signed)


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


@router.post("/channels/authorize", response_model=ChannelAuthResponse)
async def authorize_channel(
    body: ChannelAuthRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ChannelAuthResponse:
    thread = await service.authorize_channel(body.channel_name, user)
    return ChannelAuthResponse(channel_name=body.channel_name, thread_id=thread.id)
