"""
Notification fanout for crisis alerts.

Delivery runs after the mutating transaction has committed (FastAPI
background task). Each recipient is notified independently: one failing or
slow sink call never stops the others. Delivery is at-least-once; a retry
of the whole fanout may notify a recipient twice.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from uuid import UUID

import httpx

from irtiqa.db.orm import AlertType, CrisisAlert

logger = logging.getLogger(__name__)


ALERT_MESSAGES = {
    AlertType.MANUAL_PANIC: "A user pressed the panic button",
    AlertType.KEYWORD_DETECTION: "Crisis keywords detected",
    AlertType.SYSTEM_ASSESSMENT: "Risk assessment requires attention",
    AlertType.AUTO_ESCALATION: "Alert escalated automatically",
}


def alert_payload(alert: CrisisAlert, event: str = "crisis_alert.created") -> dict[str, Any]:
    """
    Transport-neutral notification body.

    Built inside the transaction so the background task never touches ORM
    state.
    """
    alert_type = AlertType(alert.alert_type)
    return {
        "event": event,
        "alert_id": str(alert.id),
        "user_id": str(alert.user_id) if alert.user_id else None,
        "case_id": str(alert.case_id) if alert.case_id else None,
        "alert_type": alert_type.value,
        "severity": alert.severity.value,
        "status": alert.status.value,
        "context": alert.context,
        "message": ALERT_MESSAGES[alert_type],
        "url": f"/admin/crisis-alerts/{alert.id}",
    }


def recipients_for(
    admin_ids: Iterable[UUID],
    primary_responder_id: Optional[UUID] = None,
) -> list[UUID]:
    """Every administrator plus the case's effective primary, de-duplicated in order."""
    recipients: list[UUID] = []
    for responder_id in list(admin_ids) + [primary_responder_id]:
        if responder_id is not None and responder_id not in recipients:
            recipients.append(responder_id)
    return recipients


class NotificationSink(ABC):
    """Delivers one notification to one responder."""

    @abstractmethod
    async def notify(self, responder_id: UUID, payload: dict[str, Any]) -> None:
        """Raise on delivery failure."""


class LoggingNotificationSink(NotificationSink):
    """Default sink: writes the notification to the application log."""

    async def notify(self, responder_id: UUID, payload: dict[str, Any]) -> None:
        logger.info(
            f"Notify {responder_id}: {payload.get('event')} "
            f"alert={payload.get('alert_id')} severity={payload.get('severity')}"
        )


class WebhookNotificationSink(NotificationSink):
    """
    POST each notification as JSON to a webhook.

    Usage:
        sink = WebhookNotificationSink("https://hooks.example.org/crisis")
        await sink.notify(responder_id, payload)
        await sink.close()
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def notify(self, responder_id: UUID, payload: dict[str, Any]) -> None:
        response = await self._client.post(
            self.url,
            json={"responder_id": str(responder_id), **payload},
        )
        response.raise_for_status()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_sink(settings: Any) -> NotificationSink:
    """Webhook sink when a URL is configured, otherwise log-only."""
    if settings.notification_webhook_url:
        return WebhookNotificationSink(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LoggingNotificationSink()


@dataclass
class FanoutResult:
    """Outcome of one fanout."""

    delivered: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    @property
    def all_delivered(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivered": [str(r) for r in self.delivered],
            "failed": [str(r) for r in self.failed],
        }


class NotificationFanout:
    """Notify every recipient once, isolating failures per recipient."""

    def __init__(self, sink: NotificationSink, timeout_seconds: float = 5.0):
        self.sink = sink
        self.timeout_seconds = timeout_seconds

    async def deliver(
        self,
        recipients: Iterable[UUID],
        payload: dict[str, Any],
    ) -> FanoutResult:
        result = FanoutResult()
        for responder_id in recipients:
            try:
                await asyncio.wait_for(
                    self.sink.notify(responder_id, payload),
                    timeout=self.timeout_seconds,
                )
            except Exception as e:
                logger.warning(
                    f"Notification to {responder_id} for alert "
                    f"{payload.get('alert_id')} failed: {e!r}"
                )
                result.failed.append(responder_id)
            else:
                result.delivered.append(responder_id)

        if result.failed:
            logger.warning(
                f"Fanout for alert {payload.get('alert_id')}: "
                f"{len(result.delivered)} delivered, {len(result.failed)} failed"
            )
        return result
