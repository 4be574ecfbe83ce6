"""
Crisis alert lifecycle.

States and legal transitions:

    pending ──acknowledge──> acknowledged ──resolve──> resolved
       └──────────────────resolve───────────────────────┘

Resolved is terminal. The lifecycle only mutates in-memory CrisisAlert
objects; persistence and row locking belong to the escalation service.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union
from uuid import UUID, uuid4

from irtiqa.db.orm import AlertStatus, AlertType, CrisisAlert, User
from irtiqa.exceptions import ConflictError, ValidationError
from irtiqa.safety.risk import RiskLevel

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[AlertStatus, tuple[AlertStatus, ...]] = {
    AlertStatus.PENDING: (AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED),
    AlertStatus.ACKNOWLEDGED: (AlertStatus.RESOLVED,),
    AlertStatus.RESOLVED: (),
}


def truncate_context(context: Optional[str], max_length: int) -> Optional[str]:
    if context is None:
        return None
    return context[:max_length]


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unknown {label} '{value}'. Allowed: {allowed}") from e


class AlertLifecycle:
    """State machine for crisis alerts."""

    def __init__(self, context_max_length: int = 500):
        self.context_max_length = context_max_length

    def create(
        self,
        submitter_id: Optional[UUID],
        severity: Union[RiskLevel, str],
        alert_type: Union[AlertType, str],
        context: Optional[str] = None,
        flags: Iterable[str] = (),
        case_id: Optional[UUID] = None,
        message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CrisisAlert:
        """
        Build a new pending alert.

        Raises:
            ValidationError: Unknown severity or alert type
        """
        severity = _coerce(RiskLevel, severity, "severity")
        alert_type = _coerce(AlertType, alert_type, "alert type")
        now = now or datetime.utcnow()

        alert = CrisisAlert(
            id=uuid4(),
            user_id=submitter_id,
            case_id=case_id,
            message_id=message_id,
            alert_type=alert_type,
            severity=severity,
            status=AlertStatus.PENDING,
            detected_keywords=list(flags),
            context=truncate_context(context, self.context_max_length),
            created_at=now,
            updated_at=now,
        )
        logger.info(
            f"Crisis alert created: type={alert_type.value} severity={severity.value} "
            f"case={case_id}"
        )
        return alert

    def _check(self, alert: CrisisAlert, target: AlertStatus) -> None:
        current = AlertStatus(alert.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise ConflictError(
                f"Cannot move alert from {current.value} to {target.value}",
                current_state=current.value,
            )

    def acknowledge(
        self,
        alert: CrisisAlert,
        responder_id: UUID,
        now: Optional[datetime] = None,
    ) -> CrisisAlert:
        """
        Take ownership of a pending alert.

        Raises:
            ConflictError: Alert is not pending
        """
        self._check(alert, AlertStatus.ACKNOWLEDGED)
        now = now or datetime.utcnow()

        alert.status = AlertStatus.ACKNOWLEDGED
        alert.assigned_responder_id = responder_id
        alert.acknowledged_at = now
        alert.updated_at = now

        logger.info(f"Crisis alert {alert.id} acknowledged by {responder_id}")
        return alert

    def resolve(
        self,
        alert: CrisisAlert,
        notes: str,
        now: Optional[datetime] = None,
        responder_id: Optional[UUID] = None,
    ) -> CrisisAlert:
        """
        Close an alert with resolution notes.

        Raises:
            ValidationError: Notes are blank
            ConflictError: Alert is already resolved
        """
        if not notes or not notes.strip():
            raise ValidationError("Resolution notes are required")
        self._check(alert, AlertStatus.RESOLVED)
        now = now or datetime.utcnow()

        # resolved_at never precedes acknowledged_at
        if alert.acknowledged_at is not None and now < alert.acknowledged_at:
            now = alert.acknowledged_at

        alert.status = AlertStatus.RESOLVED
        alert.resolution_notes = notes.strip()
        alert.resolved_at = now
        alert.updated_at = now
        if alert.assigned_responder_id is None and responder_id is not None:
            alert.assigned_responder_id = responder_id

        logger.info(f"Crisis alert {alert.id} resolved")
        return alert


class AutoEscalationPolicy:
    """
    Decide whether a new alert is acknowledged on creation.

    Critical alerts go to the first available administrator (oldest
    account) when auto-escalation is enabled.
    """

    def __init__(self, enabled: bool = True, min_severity: RiskLevel = RiskLevel.CRITICAL):
        self.enabled = enabled
        self.min_severity = min_severity

    def applies_to(self, alert: CrisisAlert) -> bool:
        return self.enabled and RiskLevel(alert.severity).rank >= self.min_severity.rank

    def choose_responder(
        self,
        alert: CrisisAlert,
        admins: Sequence[User],
    ) -> Optional[User]:
        if not self.applies_to(alert):
            return None
        for admin in admins:
            if admin.is_active:
                return admin
        logger.warning(f"No active administrator available to auto-escalate alert {alert.id}")
        return None
