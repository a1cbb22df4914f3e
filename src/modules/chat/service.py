"""Chat service — thread lifecycle, message posting, access rules."""

from __future__ import annotations

import logging
import uuid
from pathlib import PurePosixPath

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings
from src.database.base import utcnow
from src.exceptions import (
    FeatureDisabledException,
    ForbiddenException,
    NotFoundException,
    ThreadClosedException,
    TransientInfraException,
    ValidationException,
)
from src.models.chat_message import ChatMessage
from src.models.chat_thread import ChatThread
from src.models.enums import ChatMessageType
from src.modules.chat.bookings import BookingLookupBase, SqlBookingLookup
from src.modules.chat.constants import (
    CHANNEL_PREFIX,
    CLOSED_STATUSES,
    DEFAULT_IMAGE_EXTENSION,
    EVENT_MESSAGE_CREATED,
    EVENT_THREAD_CLOSED,
    JOB_CLOSE_AND_PURGE,
    MAX_EXTENSION_LENGTH,
    MESSAGES_DEFAULT_LIMIT,
    MESSAGES_MAX_LIMIT,
    MSG_CHAT_DISABLED,
    MSG_UNSUPPORTED_CONTENT_TYPE,
)
from src.modules.chat.content import parse_message_content
from src.modules.chat.media_path import thread_namespace
from src.modules.chat.notifications import NotificationSinkBase, get_notification_sink
from src.modules.chat.repository import ChatRepository
from src.modules.chat.storage import ObjectStoreBase, get_object_store
from src.modules.chat.task_queue import TaskQueueBase, get_task_queue
from src.modules.identity.auth import AuthenticatedUser

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        bookings: BookingLookupBase | None = None,
        object_store: ObjectStoreBase | None = None,
        notifier: NotificationSinkBase | None = None,
        task_queue: TaskQueueBase | None = None,
        config: Settings = settings,
    ):
        self.db = db
        self.repo = ChatRepository(db)
        self.bookings = bookings or SqlBookingLookup(db)
        self.object_store = object_store or get_object_store()
        self.notifier = notifier or get_notification_sink()
        self.task_queue = task_queue or get_task_queue()
        self.config = config

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _ensure_enabled(self) -> None:
        if not self.config.chat_enabled:
            raise FeatureDisabledException(MSG_CHAT_DISABLED)

    async def _get_thread_or_404(self, thread_id: uuid.UUID) -> ChatThread:
        thread = await self.repo.get_thread(thread_id)
        if thread is None:
            raise NotFoundException(f"Chat thread {thread_id} not found")
        return thread

    @staticmethod
    def is_participant(thread: ChatThread, user: AuthenticatedUser) -> bool:
        """Staff act on any thread; ``admin_id`` is informational only."""
        return user.is_staff or user.id == thread.client_id

    def _authorize(self, thread: ChatThread, user: AuthenticatedUser, action: str) -> None:
        if not self.is_participant(thread, user):
            logger.warning(
                "Forbidden chat %s on thread %s by user %s", action, thread.id, user.id
            )
            raise ForbiddenException(f"Not allowed to {action} this chat thread")

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def open_thread(self, booking_id: uuid.UUID, user: AuthenticatedUser) -> ChatThread:
        """Create the booking's thread, or return the existing one unchanged."""
        self._ensure_enabled()

        if not await self.bookings.exists(booking_id):
            raise NotFoundException(f"Booking {booking_id} not found")
        owner_id = await self.bookings.owner_of(booking_id)

        if not user.is_staff and user.id != owner_id:
            logger.warning("Forbidden chat open on booking %s by user %s", booking_id, user.id)
            raise ForbiddenException("Only the booking owner or staff can open this chat")

        thread, created = await self.repo.create_or_get_thread(
            booking_id=booking_id,
            client_id=owner_id,
            admin_id=user.id if user.is_staff else None,
            opened_at=utcnow(),
        )
        if created:
            logger.info(
                "Opened chat thread %s for booking %s (client %s, admin %s)",
                thread.id,
                booking_id,
                thread.client_id,
                thread.admin_id,
            )
        return thread

    async def get_thread(self, thread_id: uuid.UUID, user: AuthenticatedUser) -> ChatThread:
        self._ensure_enabled()
        thread = await self._get_thread_or_404(thread_id)
        self._authorize(thread, user, "view")
        return thread

    async def close_thread(self, thread_id: uuid.UUID, user: AuthenticatedUser) -> ChatThread:
        """Request close. Only the caller that wins ``open -> closing`` enqueues the purge."""
        self._ensure_enabled()
        thread = await self._get_thread_or_404(thread_id)
        self._authorize(thread, user, "close")

        if thread.status in CLOSED_STATUSES:
            return thread

        won = await self.repo.mark_closing(thread.id, closed_by=user.id, closing_at=utcnow())
        if not won:
            await self.db.refresh(thread)
            logger.info("Chat thread %s already closing; skipping purge enqueue", thread.id)
            return thread

        if user.is_staff and thread.admin_id is None:
            await self.repo.claim_admin(thread.id, user.id)

        # Commit before side effects so the worker and subscribers see CLOSING.
        await self.db.commit()
        await self.db.refresh(thread)

        self._enqueue_purge(thread.id)
        await self._emit(
            EVENT_THREAD_CLOSED,
            {
                "thread_id": str(thread.id),
                "status": thread.status.value,
                "closing_at": thread.closing_at,
            },
        )

        logger.info(
            "Chat thread %s for booking %s closing (requested by %s)",
            thread.id,
            thread.booking_id,
            user.id,
        )
        return thread

    def _enqueue_purge(self, thread_id: uuid.UUID) -> None:
        try:
            self.task_queue.enqueue(
                JOB_CLOSE_AND_PURGE,
                {"thread_id": str(thread_id)},
                delay=self.config.chat_purge_delay_seconds,
            )
        except Exception:
            # The stalled-close sweeper re-enqueues threads left in CLOSING.
            logger.exception("Failed to enqueue purge for chat thread %s", thread_id)

    async def authorize_channel(self, channel: str, user: AuthenticatedUser) -> ChatThread:
        """Check a realtime subscription to ``private-chat.<thread_id>``."""
        self._ensure_enabled()
        if not channel.startswith(CHANNEL_PREFIX):
            raise ValidationException(f"Unknown channel: {channel}")
        try:
            thread_id = uuid.UUID(channel[len(CHANNEL_PREFIX):])
        except ValueError:
            raise ValidationException(f"Unknown channel: {channel}") from None

        thread = await self._get_thread_or_404(thread_id)
        self._authorize(thread, user, "subscribe to")
        return thread

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(
        self, thread_id: uuid.UUID, user: AuthenticatedUser, payload: dict
    ) -> ChatMessage:
        self._ensure_enabled()
        thread = await self._get_thread_or_404(thread_id)
        if not thread.is_open:
            raise ThreadClosedException(f"Chat thread {thread_id} is {thread.status.value}")
        self._authorize(thread, user, "post to")

        content = parse_message_content(thread.id, payload, self.config.chat_media_prefix)
        # Held until commit: a concurrent close waits for this insert.
        if not await self.repo.lock_open_thread(thread.id):
            await self.db.refresh(thread)
            raise ThreadClosedException(f"Chat thread {thread_id} is {thread.status.value}")

        message = await self.repo.add_message(
            thread_id=thread.id,
            sender_id=user.id,
            message_type=content.type,
            created_at=utcnow(),
            **content.columns(),
        )
        if user.is_staff and thread.admin_id is None:
            await self.repo.claim_admin(thread.id, user.id)

        await self.db.commit()

        await self._emit(EVENT_MESSAGE_CREATED, self.serialize_message(message))
        logger.info(
            "Chat message %s (%s) posted to thread %s by %s",
            message.id,
            message.type.value,
            thread.id,
            user.id,
        )
        return message

    async def list_messages(
        self,
        thread_id: uuid.UUID,
        user: AuthenticatedUser,
        cursor: uuid.UUID | None = None,
        limit: int = MESSAGES_DEFAULT_LIMIT,
    ) -> tuple[list[ChatMessage], uuid.UUID | None]:
        """Newest-first page of messages and the cursor for the next page."""
        self._ensure_enabled()
        thread = await self._get_thread_or_404(thread_id)
        self._authorize(thread, user, "view")

        limit = min(MESSAGES_MAX_LIMIT, max(1, limit))
        anchor = None
        if cursor is not None:
            anchor = await self.repo.get_message(cursor)
            if anchor is None or anchor.thread_id != thread.id:
                raise ValidationException("Invalid cursor")

        messages = await self.repo.list_messages(thread.id, before=anchor, limit=limit)
        next_cursor = messages[-1].id if len(messages) == limit else None
        return messages, next_cursor

    async def create_upload_url(
        self,
        thread_id: uuid.UUID,
        user: AuthenticatedUser,
        filename: str,
        content_type: str,
    ) -> dict:
        """Reserve a key in the thread namespace and sign a direct upload to it."""
        self._ensure_enabled()
        thread = await self._get_thread_or_404(thread_id)
        if not thread.is_open:
            raise ThreadClosedException(f"Chat thread {thread_id} is {thread.status.value}")
        self._authorize(thread, user, "upload to")

        if content_type not in self.config.chat_allowed_image_mime_list:
            raise ValidationException(MSG_UNSUPPORTED_CONTENT_TYPE)

        extension = PurePosixPath(filename).suffix.lstrip(".").lower()
        if not extension.isalnum() or len(extension) > MAX_EXTENSION_LENGTH:
            extension = DEFAULT_IMAGE_EXTENSION
        media_path = (
            f"{thread_namespace(thread.id, self.config.chat_media_prefix)}"
            f"{uuid.uuid4().hex}.{extension}"
        )

        ttl = self.config.chat_signed_url_ttl
        signed = self.object_store.signed_upload_url(media_path, content_type, ttl)
        if not signed.get("url"):
            raise TransientInfraException("Failed to generate upload URL")

        return {
            "url": signed["url"],
            "media_path": media_path,
            "headers": signed.get("headers", {}),
            "expires_in": ttl,
        }

    def serialize_message(self, message: ChatMessage) -> dict:
        """Client view of a message; image URLs are signed on every read."""
        media_url = None
        if message.type == ChatMessageType.IMAGE and message.media_path:
            media_url = self.object_store.signed_read_url(
                message.media_path, self.config.chat_signed_url_ttl
            )
        return {
            "id": message.id,
            "thread_id": message.thread_id,
            "sender_id": message.sender_id,
            "type": message.type.value,
            "text": message.text,
            "lat": message.latitude,
            "lng": message.longitude,
            "media_url": media_url,
            "created_at": message.created_at,
        }

    async def _emit(self, event_name: str, payload: dict) -> None:
        try:
            await self.notifier.publish(event_name, payload)
        except Exception:
            logger.exception("Failed to publish %s for thread %s", event_name, payload.get("thread_id"))
