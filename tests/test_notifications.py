"""NotificationDispatcher, sinks і обробники воркера."""
import logging

import pytest

from concerndesk.services import notifications as events
from concerndesk.services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NullNotificationSink,
    QueueNotificationSink,
    build_sink,
)
from concerndesk.workers import rq_worker


class TestDispatcher:
    async def test_dispatch_runs_sink_in_background(self, sink):
        dispatcher = NotificationDispatcher(sink)

        task = dispatcher.dispatch(events.CONCERN_SUBMITTED, {"concern": {"ticket_id": "BRT000001"}})
        await task

        assert sink.events == [(events.CONCERN_SUBMITTED, {"concern": {"ticket_id": "BRT000001"}})]
        assert dispatcher.pending == 0

    async def test_failures_are_logged_not_raised(self, failing_sink, caplog):
        dispatcher = NotificationDispatcher(failing_sink)

        with caplog.at_level(logging.ERROR, logger="concerndesk.services.notifications"):
            dispatcher.dispatch(events.CONCERN_ASSIGNED, {})
            await dispatcher.aclose()

        assert failing_sink.calls == 1
        assert any(r.getMessage() == "notification_failed" for r in caplog.records)

    async def test_drain_waits_for_all(self, sink):
        dispatcher = NotificationDispatcher(sink)
        for i in range(5):
            dispatcher.dispatch(events.CONCERN_STATUS_UPDATED, {"n": i})

        await dispatcher.drain()

        assert sorted(p["n"] for _, p in sink.events) == [0, 1, 2, 3, 4]


class TestBuildSink:
    @pytest.mark.parametrize("backend,cls", [
        ("rq", QueueNotificationSink),
        ("log", LoggingNotificationSink),
        ("none", NullNotificationSink),
    ])
    def test_backend_selection(self, settings, backend, cls):
        s = settings.model_copy(update={"notifications_backend": backend})
        assert isinstance(build_sink(s), cls)


class TestWorkerHandlers:
    def test_submitted_mails_admin(self, monkeypatch):
        sent = []
        monkeypatch.setattr(rq_worker, "send_mail_mock", lambda to, subject, body: sent.append((to, subject, body)))
        monkeypatch.setattr(rq_worker.settings, "webhook_url", None)

        rq_worker.handle_event(events.CONCERN_SUBMITTED, {
            "to": "admin@example.com",
            "concern": {"ticket_id": "BRT000009", "is_anonymous": True, "student_name": "Asha"},
        })

        assert sent[0][0] == "admin@example.com"
        assert "BRT000009" in sent[0][1]
        assert "Anonymous" in sent[0][2]
        assert "Asha" not in sent[0][2]

    def test_assigned_mails_mentor(self, monkeypatch):
        sent = []
        monkeypatch.setattr(rq_worker, "send_mail_mock", lambda to, subject, body: sent.append(to))
        monkeypatch.setattr(rq_worker.settings, "webhook_url", None)

        rq_worker.handle_event(events.CONCERN_ASSIGNED, {
            "concern": {"ticket_id": "BRT000001", "title": "t"},
            "mentor_email": "mentor@example.com",
            "mentor_name": "Meera",
        })

        assert sent == ["mentor@example.com"]

    def test_webhook_is_signed(self, monkeypatch):
        posted = {}

        class _Resp:
            status_code = 204

        def fake_post(url, json, headers, timeout):
            posted.update(url=url, json=json, headers=headers)
            return _Resp()

        monkeypatch.setattr(rq_worker.requests, "post", fake_post)
        monkeypatch.setattr(rq_worker.settings, "webhook_url", "https://hooks.example.com/concerns")
        monkeypatch.setattr(rq_worker.settings, "webhook_secret", "s3cret")

        rq_worker.handle_event(events.CONCERN_STATUS_UPDATED, {"concern": {"ticket_id": "BRT000002"}})

        assert posted["url"] == "https://hooks.example.com/concerns"
        assert posted["headers"]["X-ConcernDesk-Event"] == events.CONCERN_STATUS_UPDATED
        assert posted["headers"]["X-ConcernDesk-Signature"].startswith("sha256=")

    def test_unknown_event_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="worker.notifications"):
            rq_worker.handle_event("concern.unknown", {})
        assert any(r.getMessage() == "unknown_event" for r in caplog.records)
