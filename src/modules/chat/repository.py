"""Persistence boundary for chat threads and messages.

No business rules live here. The only concurrency-sensitive operation is
``mark_closing``: a single conditional UPDATE whose affected-row count tells
the caller whether it won the ``open -> closing`` transition.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.chat_message import ChatMessage
from src.models.chat_thread import ChatThread
from src.models.enums import ChatMessageType, ChatThreadStatus


class ChatRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def get_thread(self, thread_id: uuid.UUID) -> ChatThread | None:
        result = await self.db.execute(select(ChatThread).where(ChatThread.id == thread_id))
        return result.scalar_one_or_none()

    async def get_thread_by_booking(self, booking_id: uuid.UUID) -> ChatThread | None:
        result = await self.db.execute(
            select(ChatThread).where(ChatThread.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def create_or_get_thread(
        self,
        booking_id: uuid.UUID,
        client_id: uuid.UUID,
        admin_id: uuid.UUID | None,
        opened_at: datetime,
    ) -> tuple[ChatThread, bool]:
        """Return ``(thread, created)`` for the booking's singleton thread.

        A concurrent insert for the same booking trips the unique constraint;
        the loser rolls back and returns the winner's row.
        """
        existing = await self.get_thread_by_booking(booking_id)
        if existing is not None:
            return existing, False

        thread = ChatThread(
            booking_id=booking_id,
            client_id=client_id,
            admin_id=admin_id,
            status=ChatThreadStatus.OPEN,
            opened_at=opened_at,
        )
        self.db.add(thread)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_thread_by_booking(booking_id)
            if existing is None:
                raise
            return existing, False
        return thread, True

    async def claim_admin(self, thread_id: uuid.UUID, admin_id: uuid.UUID) -> bool:
        """Set ``admin_id`` only if no staff member has been recorded yet."""
        result = await self.db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id, ChatThread.admin_id.is_(None))
            .values(admin_id=admin_id)
        )
        return result.rowcount == 1

    async def lock_open_thread(self, thread_id: uuid.UUID) -> bool:
        """Share-lock the thread row until commit if it is still OPEN.

        ``mark_closing`` blocks on the lock, so a message inserted under it is
        committed before the thread can leave OPEN and is seen by the purge.
        """
        result = await self.db.execute(
            select(ChatThread.id)
            .where(ChatThread.id == thread_id, ChatThread.status == ChatThreadStatus.OPEN)
            .with_for_update(read=True)
        )
        return result.scalar_one_or_none() is not None

    async def mark_closing(
        self, thread_id: uuid.UUID, closed_by: uuid.UUID, closing_at: datetime
    ) -> bool:
        """Atomically move an open thread to CLOSING. True if this call won."""
        result = await self.db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id, ChatThread.status == ChatThreadStatus.OPEN)
            .values(
                status=ChatThreadStatus.CLOSING,
                closing_at=closing_at,
                closed_by=closed_by,
            )
        )
        return result.rowcount == 1

    async def mark_closed(self, thread_id: uuid.UUID, closed_at: datetime) -> bool:
        """Finalize a CLOSING thread. True if the row changed."""
        result = await self.db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id, ChatThread.status == ChatThreadStatus.CLOSING)
            .values(
                status=ChatThreadStatus.CLOSED,
                closed_at=closed_at,
                last_purge_error=None,
            )
        )
        return result.rowcount == 1

    async def record_purge_failure(self, thread_id: uuid.UUID, error: str) -> None:
        await self.db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id)
            .values(
                purge_attempts=ChatThread.purge_attempts + 1,
                last_purge_error=error[:2000],
            )
        )

    async def list_stalled_closing(self, cutoff: datetime, limit: int = 100) -> list[uuid.UUID]:
        """Threads stuck in CLOSING since before ``cutoff`` with no purge attempt recorded."""
        result = await self.db.execute(
            select(ChatThread.id)
            .where(
                ChatThread.status == ChatThreadStatus.CLOSING,
                ChatThread.closing_at < cutoff,
                ChatThread.purge_attempts == 0,
            )
            .order_by(ChatThread.closing_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        thread_id: uuid.UUID,
        sender_id: uuid.UUID,
        message_type: ChatMessageType,
        created_at: datetime,
        text: str | None = None,
        media_path: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            thread_id=thread_id,
            sender_id=sender_id,
            type=message_type,
            text=text,
            media_path=media_path,
            latitude=latitude,
            longitude=longitude,
            created_at=created_at,
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def get_message(self, message_id: uuid.UUID) -> ChatMessage | None:
        result = await self.db.execute(select(ChatMessage).where(ChatMessage.id == message_id))
        return result.scalar_one_or_none()

    async def list_messages(
        self,
        thread_id: uuid.UUID,
        before: ChatMessage | None = None,
        limit: int = 20,
    ) -> list[ChatMessage]:
        """Newest-first page of messages, strictly older than ``before`` when given."""
        query = select(ChatMessage).where(ChatMessage.thread_id == thread_id)
        if before is not None:
            query = query.where(
                or_(
                    ChatMessage.created_at < before.created_at,
                    and_(
                        ChatMessage.created_at == before.created_at,
                        ChatMessage.id < before.id,
                    ),
                )
            )
        query = query.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_media_paths(self, thread_id: uuid.UUID) -> list[str]:
        result = await self.db.execute(
            select(ChatMessage.media_path).where(
                ChatMessage.thread_id == thread_id,
                ChatMessage.type == ChatMessageType.IMAGE,
                ChatMessage.media_path.isnot(None),
            )
        )
        return list(result.scalars().all())

    async def redact_messages(self, thread_id: uuid.UUID) -> int:
        """Null all content columns, keeping id/thread/sender/type/created_at."""
        result = await self.db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.thread_id == thread_id,
                or_(
                    ChatMessage.text.isnot(None),
                    ChatMessage.media_path.isnot(None),
                    ChatMessage.latitude.isnot(None),
                    ChatMessage.longitude.isnot(None),
                ),
            )
            .values(text=None, media_path=None, latitude=None, longitude=None)
        )
        return result.rowcount
