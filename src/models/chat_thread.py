"""ChatThread model — the single client/staff channel attached to a booking."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import ChatThreadStatus

if TYPE_CHECKING:
    from src.models.chat_message import ChatMessage


class ChatThread(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "chat_threads"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Participants
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    admin_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    status: Mapped[ChatThreadStatus] = mapped_column(
        SQLAlchemyEnum(
            ChatThreadStatus,
            name="chatthreadstatus",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=ChatThreadStatus.OPEN,
        server_default=ChatThreadStatus.OPEN.value,
    )

    # Lifecycle
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    closing_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    # Purge bookkeeping
    purge_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    last_purge_error: Mapped[str | None] = mapped_column(Text)

    # Relationships
    messages: Mapped[list[ChatMessage]] = relationship(
        "ChatMessage", back_populates="thread", lazy="noload"
    )

    __table_args__ = (
        Index("ix_chat_threads_status", "status"),
        Index("ix_chat_threads_client_id", "client_id"),
    )

    @property
    def is_open(self) -> bool:
        return self.status == ChatThreadStatus.OPEN

    def __repr__(self) -> str:
        return f"<ChatThread id={self.id} booking={self.booking_id} status={self.status}>"
