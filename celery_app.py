"""Celery application for booking chat background jobs.

Close-and-purge jobs must survive worker crashes, so tasks are acknowledged
only after they finish and are re-delivered if the worker dies mid-run.
"""

from celery import Celery

from src.config import settings
from src.modules.chat.constants import JOB_REQUEUE_STALLED

CHAT_CLEANUP_QUEUE = "chat-cleanup"

celery = Celery("bookingchat")

celery.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_default_queue=CHAT_CLEANUP_QUEUE,
    task_routes={
        "src.modules.chat.tasks.*": {"queue": CHAT_CLEANUP_QUEUE},
    },
    # At-least-once delivery for purge jobs
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    broker_transport_options={
        "max_retries": 10,
        "interval_start": 0.2,
        "interval_step": 0.5,
        "interval_max": 5.0,
        "retry_on_timeout": True,
        # Longer than the largest backoff step plus one attempt's time limit.
        "visibility_timeout": 3600,
    },
    beat_schedule={
        "chat-requeue-stalled-closures": {
            "task": JOB_REQUEUE_STALLED,
            "schedule": settings.chat_sweeper_poll_seconds,
        },
    },
)

celery.autodiscover_tasks(["src.modules.chat"])
