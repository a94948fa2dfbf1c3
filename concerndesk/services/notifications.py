# concerndesk/services/notifications.py
"""
Доставка сповіщень (email / webhook) поза HTTP-запитом.

NotificationSink: синхронний інтерфейс "віддай подію назовні".
NotificationDispatcher запускає sink.send у threadpool як фонову задачу,
тримає посилання на задачі і дочікується їх при shutdown.
Помилки доставки логуються і не доходять до клієнта.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Protocol, Set

import redis
from fastapi.encoders import jsonable_encoder
from rq import Queue, Retry
from starlette.concurrency import run_in_threadpool

from concerndesk.core.config import Settings

log = logging.getLogger(__name__)

WORKER_HANDLER = "concerndesk.workers.rq_worker.handle_event"

# типи подій
CONCERN_SUBMITTED = "concern.submitted"
CONCERN_STATUS_UPDATED = "concern.status_updated"
CONCERN_ASSIGNED = "concern.assigned"


class NotificationSink(Protocol):
    def send(self, event_type: str, payload: Mapping[str, Any]) -> None: ...


class QueueNotificationSink:
    """Кладе подію в RQ-чергу: handle_event виконає воркер."""

    def __init__(self, redis_url: str, queue_name: str = "notifications", job_timeout: int = 60):
        self.redis_url = redis_url
        self.queue_name = queue_name
        self.job_timeout = job_timeout
        self._queue: Queue | None = None

    def _get_queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self.queue_name, connection=redis.from_url(self.redis_url))
        return self._queue

    def send(self, event_type: str, payload: Mapping[str, Any]) -> None:
        job = self._get_queue().enqueue(
            WORKER_HANDLER,
            event_type,
            dict(payload),
            job_timeout=self.job_timeout,
            retry=Retry(max=3, interval=[5, 15, 30]),
        )
        log.info("notification_enqueued", extra={"event_type": event_type, "job_id": job.id})


class LoggingNotificationSink:
    """Для dev: лише пише подію в лог."""

    def send(self, event_type: str, payload: Mapping[str, Any]) -> None:
        log.info("notification", extra={"event_type": event_type, "payload": dict(payload)})


class NullNotificationSink:
    def send(self, event_type: str, payload: Mapping[str, Any]) -> None:
        return None


def build_sink(settings: Settings) -> NotificationSink:
    backend = settings.notifications_backend
    if backend == "rq":
        return QueueNotificationSink(settings.redis_url, settings.notifications_queue)
    if backend == "log":
        return LoggingNotificationSink()
    return NullNotificationSink()


class NotificationDispatcher:
    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, event_type: str, payload: Mapping[str, Any]) -> Optional[asyncio.Task]:
        """Fire-and-forget. Повертає задачу (тести можуть її дочекатись)."""
        body = jsonable_encoder(dict(payload))
        task = asyncio.create_task(self._run(event_type, body), name=f"notify:{event_type}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, event_type: str, payload: Mapping[str, Any]) -> None:
        try:
            await run_in_threadpool(self.sink.send, event_type, payload)
        except Exception:
            # доставка best-effort: запит уже закомічено
            log.exception("notification_failed", extra={"event_type": event_type})

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        log.info("notification_dispatcher_closed")
