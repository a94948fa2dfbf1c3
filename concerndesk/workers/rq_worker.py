# concerndesk/workers/rq_worker.py
import hashlib
import hmac
import json
import logging
import os
from typing import Any, Callable, Mapping

import redis
import requests
from rq import Queue, Worker

from concerndesk.core.config import settings
from concerndesk.core.logging import setup_logging
from concerndesk.services.notifications import (
    CONCERN_ASSIGNED,
    CONCERN_STATUS_UPDATED,
    CONCERN_SUBMITTED,
)

logger = logging.getLogger("worker.notifications")


def _sign(payload: Mapping[str, Any]) -> str | None:
    if not settings.webhook_secret:
        return None
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hmac.new(settings.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _post(event_type: str, payload: Mapping[str, Any]) -> None:
    url = settings.webhook_url
    if not url:
        return
    headers = {"Content-Type": "application/json", "X-ConcernDesk-Event": event_type}
    sig = _sign(payload)
    if sig:
        headers["X-ConcernDesk-Signature"] = f"sha256={sig}"
    r = requests.post(url, json=dict(payload), headers=headers, timeout=10)
    logger.info("webhook_sent", extra={"event_type": event_type, "status": r.status_code})


def send_mail_mock(to: str, subject: str, body: str) -> None:
    logger.info("SEND_MAIL", extra={"to": to, "subject": subject, "body_len": len(body)})


def on_concern_submitted(payload: Mapping[str, Any]) -> None:
    concern = payload.get("concern", {})
    to = payload.get("to") or settings.notify_admin_email
    student = "Anonymous" if concern.get("is_anonymous") else concern.get("student_name")
    send_mail_mock(
        to,
        f"New Concern Submitted - {concern.get('ticket_id')}",
        f"{student} submitted [{concern.get('severity')}] {concern.get('category')}: {concern.get('title')}",
    )
    _post(CONCERN_SUBMITTED, payload)


def on_status_updated(payload: Mapping[str, Any]) -> None:
    concern = payload.get("concern", {})
    email = concern.get("student_email")
    if email:
        comment = payload.get("comment") or ""
        send_mail_mock(
            email,
            f"Concern Status Updated - {concern.get('ticket_id')}",
            f"Status: {concern.get('status')}. Updated by {payload.get('updated_by')}. {comment}".strip(),
        )
    _post(CONCERN_STATUS_UPDATED, payload)


def on_assigned(payload: Mapping[str, Any]) -> None:
    concern = payload.get("concern", {})
    email = payload.get("mentor_email")
    if email:
        send_mail_mock(
            email,
            f"New Concern Assigned - {concern.get('ticket_id')}",
            f"Hello {payload.get('mentor_name')}, concern {concern.get('title')} was assigned to you.",
        )
    _post(CONCERN_ASSIGNED, payload)


EVENT_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    CONCERN_SUBMITTED: on_concern_submitted,
    CONCERN_STATUS_UPDATED: on_status_updated,
    CONCERN_ASSIGNED: on_assigned,
}


def handle_event(event_type: str, payload: Mapping[str, Any] | None = None) -> None:
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("unknown_event", extra={"event_type": event_type})
        return
    handler(payload or {})


def main() -> None:
    setup_logging(settings.log_level)
    queue_name = settings.notifications_queue
    logger.info("worker_starting", extra={"queue": queue_name, "redis": settings.redis_url})
    conn = redis.from_url(settings.redis_url)
    queue = Queue(queue_name, connection=conn)
    worker = Worker([queue], connection=conn, name=os.getenv("WORKER_NAME", "notifications-worker"))
    worker.work(logging_level=logging.INFO)


if __name__ == "__main__":
    main()
