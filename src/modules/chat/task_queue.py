"""Task queue seam between the request path and Celery workers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class TaskQueueBase(ABC):
    @abstractmethod
    def enqueue(self, job_name: str, payload: dict, delay: int = 0) -> None:
        """Schedule ``job_name`` with keyword ``payload`` after ``delay`` seconds."""


class CeleryTaskQueue(TaskQueueBase):
    def __init__(self, app=None) -> None:
        self._app = app

    @property
    def app(self):
        if self._app is None:
            from celery_app import celery

            self._app = celery
        return self._app

    def enqueue(self, job_name: str, payload: dict, delay: int = 0) -> None:
        result = self.app.send_task(job_name, kwargs=payload, countdown=delay or None)
        logger.info("Enqueued %s (task %s) with delay %ss", job_name, result.id, delay)


_queue: TaskQueueBase | None = None


def get_task_queue() -> TaskQueueBase:
    global _queue
    if _queue is None:
        _queue = CeleryTaskQueue()
    return _queue
