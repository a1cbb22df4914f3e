"""Close-and-purge job for chat threads.

Runs after ``close_thread`` commits a thread as CLOSING. Deletes the
thread's media, optionally redacts message content, then marks the thread
CLOSED. Delivery is at-least-once, so every step is safe to repeat:

- prefix deletion of already-deleted objects is a no-op
- redaction only touches rows that still hold content
- the final transition is conditional on status CLOSING

Infrastructure failures propagate so the task layer can retry. Anything
else while purging media is logged and the close still completes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass

from src.database.base import utcnow
from src.exceptions import TransientInfraException
from src.models.enums import ChatThreadStatus
from src.modules.chat.media_path import is_valid_media_path
from src.modules.chat.repository import ChatRepository
from src.modules.chat.storage import ObjectStoreBase

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    thread_id: str
    outcome: str
    deleted_objects: int = 0
    skipped_paths: int = 0
    redacted_messages: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class ClosePurgeJob:
    def __init__(
        self,
        repository: ChatRepository,
        object_store: ObjectStoreBase,
        *,
        redact_messages: bool,
        media_prefix: str = "chats",
    ):
        self.repo = repository
        self.object_store = object_store
        self.redact_messages = redact_messages
        self.media_prefix = media_prefix

    async def handle(self, thread_id: uuid.UUID) -> PurgeResult:
        """Purge one thread. The caller owns the transaction and commits on success."""
        thread = await self.repo.get_thread(thread_id)
        if thread is None:
            logger.info("Chat thread %s no longer exists; nothing to purge", thread_id)
            return PurgeResult(thread_id=str(thread_id), outcome="missing")

        if thread.status == ChatThreadStatus.CLOSED:
            return PurgeResult(thread_id=str(thread_id), outcome="already_closed")

        if thread.status == ChatThreadStatus.OPEN:
            logger.warning("Purge requested for open chat thread %s; ignoring", thread_id)
            return PurgeResult(thread_id=str(thread_id), outcome="not_closing")

        result = PurgeResult(thread_id=str(thread_id), outcome="closed")

        try:
            await self._purge_media(thread_id, result)
        except TransientInfraException:
            raise
        except Exception:
            logger.exception("Media purge for chat thread %s failed; closing anyway", thread_id)

        if self.redact_messages:
            result.redacted_messages = await self.repo.redact_messages(thread_id)

        await self.repo.mark_closed(thread_id, closed_at=utcnow())

        logger.info(
            "Chat thread %s closed: %d objects deleted, %d messages redacted, %d paths skipped",
            thread_id,
            result.deleted_objects,
            result.redacted_messages,
            result.skipped_paths,
        )
        return result

    async def _purge_media(self, thread_id: uuid.UUID, result: PurgeResult) -> None:
        result.deleted_objects = await asyncio.to_thread(self.object_store.delete_prefix, thread_id)

        for path in await self.repo.list_media_paths(thread_id):
            # Everything valid lives under the namespace just deleted. Never
            # touch keys outside it: they may belong to another thread.
            if not is_valid_media_path(thread_id, path, self.media_prefix):
                logger.warning("Skipping media path outside thread %s namespace: %r", thread_id, path)
                result.skipped_paths += 1
