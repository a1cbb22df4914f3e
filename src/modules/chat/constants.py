"""Chat event names, channel naming, queue job names and paging limits."""

from __future__ import annotations

from src.models.enums import ChatThreadStatus

# Statuses that reject new messages and make close a no-op
CLOSED_STATUSES: frozenset[ChatThreadStatus] = frozenset(
    {ChatThreadStatus.CLOSING, ChatThreadStatus.CLOSED}
)

# Realtime events
EVENT_MESSAGE_CREATED = "message.created"
EVENT_THREAD_CLOSED = "thread.closed"

# Realtime channel per thread: private-chat.<thread_id>
CHANNEL_PREFIX = "private-chat."

# Background job names
JOB_CLOSE_AND_PURGE = "src.modules.chat.tasks.close_thread_and_purge_media"
JOB_REQUEUE_STALLED = "src.modules.chat.tasks.requeue_stalled_closures"

# Message paging
MESSAGES_DEFAULT_LIMIT = 20
MESSAGES_MAX_LIMIT = 50

# Geographic bounds
LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)

# Upload keys
DEFAULT_IMAGE_EXTENSION = "jpg"
MAX_EXTENSION_LENGTH = 8

# Validation messages surfaced to clients
MSG_TEXT_REQUIRED = "Text is required"
MSG_INVALID_MEDIA_PATH = "Invalid media path for this thread"
MSG_INVALID_COORDINATES = "Invalid coordinates"
MSG_INVALID_TYPE = "Invalid message type"
MSG_UNSUPPORTED_CONTENT_TYPE = "Unsupported content type"
MSG_CHAT_DISABLED = "Chat feature is disabled"
