# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.booking import Booking
from src.models.chat_message import ChatMessage
from src.models.chat_thread import ChatThread
from src.models.enums import ChatMessageType, ChatThreadStatus, UserRole

__all__ = [
    "Booking",
    "ChatMessage",
    "ChatMessageType",
    "ChatThread",
    "ChatThreadStatus",
    "UserRole",
]
