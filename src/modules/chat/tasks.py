"""Celery tasks for chat close/purge and the stalled-close sweeper."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.exc import InterfaceError, OperationalError

from celery_app import celery
from src.config import settings
from src.database.base import utcnow
from src.database.engine import worker_session
from src.exceptions import TransientInfraException
from src.modules.chat.constants import JOB_CLOSE_AND_PURGE, JOB_REQUEUE_STALLED
from src.modules.chat.purge_job import ClosePurgeJob
from src.modules.chat.repository import ChatRepository
from src.modules.chat.storage import get_object_store
from src.modules.chat.task_queue import get_task_queue

logger = logging.getLogger(__name__)

# Infrastructure-class failures; anything else is a bug and is not retried.
RETRYABLE_ERRORS = (
    TransientInfraException,
    OperationalError,
    InterfaceError,
    SoftTimeLimitExceeded,
    OSError,
)


def purge_retry_countdown(retries: int) -> int:
    """Delay before retry number ``retries + 1``; clamps to the last configured delay."""
    backoff = settings.chat_purge_backoff_list
    return backoff[min(retries, len(backoff) - 1)]


async def _purge_thread_async(thread_id: uuid.UUID) -> dict:
    async with worker_session() as session:
        job = ClosePurgeJob(
            ChatRepository(session),
            get_object_store(),
            redact_messages=settings.chat_redact_messages,
            media_prefix=settings.chat_media_prefix,
        )
        result = await job.handle(thread_id)
        await session.commit()
    return result.as_dict()


async def _record_failure_async(thread_id: uuid.UUID, error: str) -> None:
    async with worker_session() as session:
        await ChatRepository(session).record_purge_failure(thread_id, error)
        await session.commit()


async def _requeue_stalled_async() -> dict:
    """Re-enqueue purges for CLOSING threads that never got a purge attempt."""
    cutoff = utcnow() - timedelta(seconds=settings.chat_stalled_close_seconds)
    async with worker_session() as session:
        thread_ids = await ChatRepository(session).list_stalled_closing(cutoff)

    stats = {"checked": len(thread_ids), "requeued": 0, "errors": 0}
    queue = get_task_queue()
    for thread_id in thread_ids:
        try:
            queue.enqueue(JOB_CLOSE_AND_PURGE, {"thread_id": str(thread_id)})
            stats["requeued"] += 1
        except Exception:
            logger.exception("Error re-enqueueing purge for chat thread %s", thread_id)
            stats["errors"] += 1
    return stats


# ---------------------------------------------------------------------------
# Celery task definitions
# ---------------------------------------------------------------------------


@celery.task(
    name=JOB_CLOSE_AND_PURGE,
    bind=True,
    max_retries=settings.chat_purge_max_attempts - 1,
    acks_late=True,
    soft_time_limit=settings.chat_purge_attempt_timeout_seconds,
)
def close_thread_and_purge_media(self, thread_id: str) -> dict:
    """Delete a closing thread's media, redact it if configured, mark it closed."""
    thread_uuid = uuid.UUID(thread_id)
    try:
        stats = asyncio.run(_purge_thread_async(thread_uuid))
    except RETRYABLE_ERRORS as exc:
        attempt = self.request.retries + 1
        try:
            asyncio.run(_record_failure_async(thread_uuid, f"attempt {attempt}: {exc}"))
        except Exception:
            logger.exception("Could not record purge failure for chat thread %s", thread_id)

        if self.request.retries >= self.max_retries:
            logger.critical(
                "ALERT: chat purge for thread %s failed permanently after %d attempts; "
                "thread left in CLOSING",
                thread_id,
                attempt,
            )
            raise

        countdown = purge_retry_countdown(self.request.retries)
        logger.warning(
            "Chat purge attempt %d for thread %s failed (%s); retrying in %ss",
            attempt,
            thread_id,
            exc,
            countdown,
        )
        raise self.retry(exc=exc, countdown=countdown)

    logger.info("close_thread_and_purge_media complete: %s", stats)
    return stats


@celery.task(name=JOB_REQUEUE_STALLED)
def requeue_stalled_closures():
    """Recover closes whose purge job never reached the broker."""
    stats = asyncio.run(_requeue_stalled_async())
    logger.info("requeue_stalled_closures complete: %s", stats)
    return stats
