"""
Escalation service.

Turns risk assessments, panic presses and chat-message scans into crisis
alerts, and drives acknowledge/resolve for the admin queue. Everything runs
inside the caller's transaction; the returned Escalation carries the
recipients and payload for the post-commit notification fanout.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.db.orm import AlertStatus, AlertType, Case, CrisisAlert
from irtiqa.db.repositories import (
    AuditLogRepository,
    CaseRepository,
    CrisisAlertRepository,
    UserRepository,
)
from irtiqa.exceptions import NotFoundError
from irtiqa.safety.lifecycle import AlertLifecycle, AutoEscalationPolicy
from irtiqa.safety.notifications import alert_payload, recipients_for
from irtiqa.safety.risk import RiskAssessment, RiskConfig, RiskLevel, keyword_level, match_keywords
from irtiqa.security.auth import User as AuthUser
from irtiqa.team.ledger import CaseOwnershipLedger

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = ("system", "system")


@dataclass
class Escalation:
    """An alert plus what the post-commit fanout needs."""

    alert: CrisisAlert
    recipients: list[UUID] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)

    def __iter__(self):
        return iter((self.alert, self.recipients, self.payload))


class EscalationService:
    """Create and manage crisis alerts."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Any,
        policy: Optional[AutoEscalationPolicy] = None,
        lifecycle: Optional[AlertLifecycle] = None,
    ):
        self.session = session
        self.settings = settings
        self.policy = policy or AutoEscalationPolicy(enabled=settings.crisis_auto_escalate)
        self.lifecycle = lifecycle or AlertLifecycle(settings.alert_context_max_length)
        self.alerts = CrisisAlertRepository(session)
        self.users = UserRepository(session)
        self.cases = CaseRepository(session)
        self.audit = AuditLogRepository(session)

    async def _open(
        self,
        alert: CrisisAlert,
        primary_responder_id: Optional[UUID] = None,
        actor: tuple[str, str] = SYSTEM_ACTOR,
        notify: bool = True,
    ) -> Escalation:
        """Persist a new alert, apply auto-escalation and snapshot the fanout."""
        await self.alerts.create(alert)
        await self.audit.log(
            user_id=actor[0],
            user_name=actor[1],
            action="alert.create",
            resource_type="crisis_alert",
            resource_id=alert.id,
            case_id=alert.case_id,
            details={
                "alert_type": alert.alert_type.value,
                "severity": alert.severity.value,
                "flags": list(alert.detected_keywords or []),
            },
        )

        admins = await self.users.list_admins()
        chosen = self.policy.choose_responder(alert, admins)
        if chosen is not None:
            self.lifecycle.acknowledge(alert, chosen.id)
            await self.session.flush()
            await self.audit.log(
                user_id=str(chosen.id),
                user_name=chosen.full_name,
                action="alert.auto_acknowledge",
                resource_type="crisis_alert",
                resource_id=alert.id,
                case_id=alert.case_id,
            )
            logger.warning(f"Critical alert {alert.id} auto-escalated to admin {chosen.id}")

        recipients: list[UUID] = []
        if notify:
            recipients = recipients_for([admin.id for admin in admins], primary_responder_id)
        return Escalation(alert=alert, recipients=recipients, payload=alert_payload(alert))

    async def escalate_submission(
        self,
        case: Case,
        assessment: RiskAssessment,
    ) -> Optional[Escalation]:
        """
        Raise an alert for a scored submission.

        Returns None when the assessment does not require escalation.
        """
        if not assessment.requires_escalation:
            return None

        alert_type = (
            AlertType.KEYWORD_DETECTION if assessment.flags else AlertType.SYSTEM_ASSESSMENT
        )
        alert = self.lifecycle.create(
            submitter_id=case.submitter_id,
            severity=assessment.risk_level,
            alert_type=alert_type,
            context=case.problem_description,
            flags=assessment.flags,
            case_id=case.id,
        )
        logger.warning(
            f"Case {case.ticket_number} escalated: risk={assessment.risk_level.value} "
            f"flags={list(assessment.flags)}"
        )
        return await self._open(alert, primary_responder_id=case.assigned_responder_id)

    async def trigger_panic(
        self,
        user: AuthUser,
        context: Optional[str] = None,
        case_id: Optional[UUID] = None,
    ) -> Escalation:
        """
        Manual panic button. Always critical, never scored.

        Raises:
            NotFoundError: case_id is unknown or not visible to the user
        """
        primary_responder_id = None
        if case_id is not None:
            case = await self.cases.get_by_id(case_id)
            ledger = CaseOwnershipLedger(self.session)
            if case is None or not await ledger.is_visible_to(case, user):
                raise NotFoundError("Case")
            primary_responder_id = case.assigned_responder_id

        alert = self.lifecycle.create(
            submitter_id=user.id,
            severity=RiskLevel.CRITICAL,
            alert_type=AlertType.MANUAL_PANIC,
            context=context,
            case_id=case_id,
        )
        logger.warning(f"Panic button pressed by {user.id} (case={case_id})")
        return await self._open(
            alert,
            primary_responder_id=primary_responder_id,
            actor=(str(user.id), user.display_name),
        )

    async def scan_message(
        self,
        text: str,
        user_id: Optional[UUID] = None,
        case_id: Optional[UUID] = None,
        message_id: Optional[str] = None,
    ) -> Optional[Escalation]:
        """
        Keyword detection on a chat message.

        Severity follows the keyword count. Only high and critical alerts
        are fanned out. Returns None when nothing matched.
        """
        config = RiskConfig.from_settings(self.settings)
        flags = match_keywords(text, config.keywords)
        severity = keyword_level(len(flags), config)
        if severity is None:
            return None

        primary_responder_id = None
        if case_id is not None:
            case = await self.cases.get_by_id(case_id)
            if case is None:
                raise NotFoundError("Case")
            primary_responder_id = case.assigned_responder_id

        alert = self.lifecycle.create(
            submitter_id=user_id,
            severity=severity,
            alert_type=AlertType.KEYWORD_DETECTION,
            context=text,
            flags=flags,
            case_id=case_id,
            message_id=message_id,
        )
        logger.warning(f"Crisis keywords in message {message_id}: {flags}")
        return await self._open(
            alert,
            primary_responder_id=primary_responder_id,
            notify=severity.rank >= RiskLevel.HIGH.rank,
        )

    async def get_alert(self, alert_id: UUID) -> CrisisAlert:
        alert = await self.alerts.get_by_id(alert_id)
        if alert is None:
            raise NotFoundError("Crisis alert")
        return alert

    async def acknowledge(self, alert_id: UUID, admin: AuthUser) -> CrisisAlert:
        """Lock the alert row and acknowledge it."""
        alert = await self.alerts.get_for_update(alert_id)
        if alert is None:
            raise NotFoundError("Crisis alert")

        self.lifecycle.acknowledge(alert, admin.id)
        await self.session.flush()
        await self.audit.log(
            user_id=str(admin.id),
            user_name=admin.display_name,
            action="alert.acknowledge",
            resource_type="crisis_alert",
            resource_id=alert.id,
            case_id=alert.case_id,
        )
        return alert

    async def resolve(self, alert_id: UUID, admin: AuthUser, notes: str) -> Escalation:
        """Lock the alert row and resolve it. The result feeds the resolution fanout."""
        alert = await self.alerts.get_for_update(alert_id)
        if alert is None:
            raise NotFoundError("Crisis alert")

        self.lifecycle.resolve(alert, notes, responder_id=admin.id)
        await self.session.flush()
        await self.audit.log(
            user_id=str(admin.id),
            user_name=admin.display_name,
            action="alert.resolve",
            resource_type="crisis_alert",
            resource_id=alert.id,
            case_id=alert.case_id,
            details={"notes": alert.resolution_notes},
        )

        primary_responder_id = None
        if alert.case_id is not None:
            case = await self.cases.get_by_id(alert.case_id)
            primary_responder_id = case.assigned_responder_id if case else None
        admins = await self.users.list_admins()
        return Escalation(
            alert=alert,
            recipients=recipients_for([a.id for a in admins], primary_responder_id),
            payload=alert_payload(alert, event="crisis_alert.resolved"),
        )

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[RiskLevel] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[CrisisAlert], int]:
        offset = (page - 1) * per_page
        items = await self.alerts.list(status, severity, limit=per_page, offset=offset)
        total = await self.alerts.count(status, severity)
        return items, total

    async def stats(self) -> dict[str, Any]:
        """Counts for the admin dashboard."""
        by_status = await self.alerts.count_by(CrisisAlert.status)
        by_severity = await self.alerts.count_by(CrisisAlert.severity)
        today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "total": sum(by_status.values()),
            "by_status": {s.value: by_status.get(s.value, 0) for s in AlertStatus},
            "by_severity": {s.value: by_severity.get(s.value, 0) for s in RiskLevel},
            "today": await self.alerts.count_since(today),
            "last_7_days": await self.alerts.count_since(today - timedelta(days=6)),
        }
