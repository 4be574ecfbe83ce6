"""
Tests for alert notification payloads, sinks and fanout.
"""

import asyncio
import json
from uuid import uuid4

import httpx
import pytest

from irtiqa.db.orm import AlertType
from irtiqa.safety.lifecycle import AlertLifecycle
from irtiqa.safety.notifications import (
    LoggingNotificationSink,
    NotificationFanout,
    WebhookNotificationSink,
    alert_payload,
    build_sink,
    recipients_for,
)
from irtiqa.safety.risk import RiskLevel


@pytest.fixture
def alert():
    return AlertLifecycle().create(
        submitter_id=uuid4(),
        severity=RiskLevel.CRITICAL,
        alert_type=AlertType.MANUAL_PANIC,
        context="tolong",
        case_id=uuid4(),
    )


class TestPayload:
    """Tests for the notification body."""

    def test_fields(self, alert):
        payload = alert_payload(alert)
        assert payload["event"] == "crisis_alert.created"
        assert payload["alert_id"] == str(alert.id)
        assert payload["case_id"] == str(alert.case_id)
        assert payload["severity"] == "critical"
        assert payload["status"] == "pending"
        assert payload["message"] == "A user pressed the panic button"
        assert payload["url"] == f"/admin/crisis-alerts/{alert.id}"

    def test_json_serialisable(self, alert):
        json.dumps(alert_payload(alert, event="crisis_alert.resolved"))


class TestRecipients:
    """Tests for recipient selection."""

    def test_admins_then_primary(self):
        a1, a2, primary = uuid4(), uuid4(), uuid4()
        assert recipients_for([a1, a2], primary) == [a1, a2, primary]

    def test_deduplicated(self):
        """An admin who is also the primary is notified once."""
        a1 = uuid4()
        assert recipients_for([a1, a1], a1) == [a1]

    def test_no_primary(self):
        a1 = uuid4()
        assert recipients_for([a1], None) == [a1]


class TestFanout:
    """Tests for per-recipient delivery."""

    @pytest.mark.asyncio
    async def test_delivers_to_everyone(self, sink, alert):
        recipients = [uuid4(), uuid4(), uuid4()]
        result = await NotificationFanout(sink).deliver(recipients, alert_payload(alert))
        assert result.all_delivered
        assert sink.recipients() == recipients

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_others(self, sink, alert):
        first, broken, last = uuid4(), uuid4(), uuid4()
        sink.fail_for.add(broken)

        result = await NotificationFanout(sink).deliver([first, broken, last], alert_payload(alert))

        assert result.delivered == [first, last]
        assert result.failed == [broken]
        assert not result.all_delivered
        assert result.to_dict()["failed"] == [str(broken)]

    @pytest.mark.asyncio
    async def test_slow_sink_times_out(self, alert):
        class SlowSink(LoggingNotificationSink):
            async def notify(self, responder_id, payload):
                await asyncio.sleep(5)

        responder = uuid4()
        result = await NotificationFanout(SlowSink(), timeout_seconds=0.01).deliver(
            [responder], alert_payload(alert)
        )
        assert result.failed == [responder]


class TestSinks:
    """Tests for concrete sinks."""

    @pytest.mark.asyncio
    async def test_webhook_posts_json(self, alert):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(202)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sink = WebhookNotificationSink("https://hooks.irtiqa.test/crisis", client=client)
        responder = uuid4()

        await sink.notify(responder, alert_payload(alert))
        await client.aclose()

        assert seen[0]["responder_id"] == str(responder)
        assert seen[0]["alert_id"] == str(alert.id)

    @pytest.mark.asyncio
    async def test_webhook_error_raises(self, alert):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        sink = WebhookNotificationSink("https://hooks.irtiqa.test/crisis", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await sink.notify(uuid4(), alert_payload(alert))
        await client.aclose()

    def test_build_sink(self, settings):
        assert isinstance(build_sink(settings), LoggingNotificationSink)
        webhook = build_sink(
            settings.model_copy(update={"notification_webhook_url": "https://hooks.irtiqa.test"})
        )
        assert isinstance(webhook, WebhookNotificationSink)
