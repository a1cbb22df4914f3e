"""ChatMessage model — one text, image or location message in a thread.

Content lives in nullable per-type columns; exactly one group is populated
for a live message and all of them are nulled by redaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import ChatMessageType

if TYPE_CHECKING:
    from src.models.chat_thread import ChatThread


class ChatMessage(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "chat_messages"

    thread_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_threads.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    type: Mapped[ChatMessageType] = mapped_column(
        SQLAlchemyEnum(
            ChatMessageType,
            name="chatmessagetype",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )

    # Content (one group per type)
    text: Mapped[str | None] = mapped_column(Text)
    media_path: Mapped[str | None] = mapped_column(String(2048))
    latitude: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    longitude: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    # Relationships
    thread: Mapped[ChatThread] = relationship(
        "ChatThread", back_populates="messages", lazy="noload"
    )

    __table_args__ = (
        Index("ix_chat_messages_thread_id_created_at", "thread_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ChatMessage id={self.id} thread={self.thread_id} type={self.type}>"
