"""
Tests for the crisis alert lifecycle and auto-escalation policy.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from irtiqa.db.orm import AlertStatus, AlertType, User, UserRole
from irtiqa.exceptions import ConflictError, ValidationError
from irtiqa.safety.lifecycle import AlertLifecycle, AutoEscalationPolicy
from irtiqa.safety.risk import RiskLevel


@pytest.fixture
def lifecycle() -> AlertLifecycle:
    return AlertLifecycle(context_max_length=20)


@pytest.fixture
def alert(lifecycle):
    return lifecycle.create(
        submitter_id=uuid4(),
        severity=RiskLevel.HIGH,
        alert_type=AlertType.KEYWORD_DETECTION,
        context="short context",
        flags=["ingin mati"],
    )


class TestCreate:
    """Tests for alert creation."""

    def test_new_alert_is_pending(self, alert):
        assert alert.status == AlertStatus.PENDING
        assert alert.detected_keywords == ["ingin mati"]
        assert alert.acknowledged_at is None
        assert alert.resolved_at is None

    def test_context_truncated(self, lifecycle):
        created = lifecycle.create(None, "critical", "manual_panic", context="x" * 100)
        assert created.context == "x" * 20
        assert created.severity == RiskLevel.CRITICAL
        assert created.alert_type == AlertType.MANUAL_PANIC

    def test_unknown_severity(self, lifecycle):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.create(None, "catastrophic", AlertType.MANUAL_PANIC)
        assert "catastrophic" in exc_info.value.message

    def test_unknown_type(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.create(None, RiskLevel.LOW, "rumour")


class TestTransitions:
    """Tests for acknowledge and resolve."""

    def test_acknowledge(self, lifecycle, alert):
        responder = uuid4()
        lifecycle.acknowledge(alert, responder)
        assert alert.status == AlertStatus.ACKNOWLEDGED
        assert alert.assigned_responder_id == responder
        assert alert.acknowledged_at is not None

    def test_acknowledge_twice_conflicts(self, lifecycle, alert):
        lifecycle.acknowledge(alert, uuid4())
        with pytest.raises(ConflictError) as exc_info:
            lifecycle.acknowledge(alert, uuid4())
        assert exc_info.value.current_state == "acknowledged"

    def test_resolve_from_pending(self, lifecycle, alert):
        """Pending alerts can be resolved directly."""
        responder = uuid4()
        lifecycle.resolve(alert, "  Called the user, safe now  ", responder_id=responder)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolution_notes == "Called the user, safe now"
        assert alert.assigned_responder_id == responder

    def test_resolve_keeps_acknowledging_responder(self, lifecycle, alert):
        first = uuid4()
        lifecycle.acknowledge(alert, first)
        lifecycle.resolve(alert, "done", responder_id=uuid4())
        assert alert.assigned_responder_id == first

    def test_resolved_is_terminal(self, lifecycle, alert):
        lifecycle.resolve(alert, "done")
        with pytest.raises(ConflictError):
            lifecycle.resolve(alert, "again")
        with pytest.raises(ConflictError):
            lifecycle.acknowledge(alert, uuid4())

    @pytest.mark.parametrize("notes", ["", "   ", None])
    def test_resolve_requires_notes(self, lifecycle, alert, notes):
        with pytest.raises(ValidationError):
            lifecycle.resolve(alert, notes)
        assert alert.status == AlertStatus.PENDING

    def test_resolved_never_before_acknowledged(self, lifecycle, alert):
        acked = datetime(2026, 10, 1, 12, 0)
        lifecycle.acknowledge(alert, uuid4(), now=acked)
        lifecycle.resolve(alert, "done", now=acked - timedelta(minutes=5))
        assert alert.resolved_at == acked


class TestAutoEscalationPolicy:
    """Tests for picking an administrator for critical alerts."""

    def _admin(self, active=True):
        return User(
            id=uuid4(),
            username="admin",
            email="admin@irtiqa.test",
            full_name="Admin",
            role=UserRole.ADMIN,
            is_active=active,
        )

    def test_only_critical_alerts(self, lifecycle, alert):
        policy = AutoEscalationPolicy(enabled=True)
        assert policy.applies_to(alert) is False
        assert policy.choose_responder(alert, [self._admin()]) is None

    def test_first_active_admin(self, lifecycle):
        critical = lifecycle.create(None, RiskLevel.CRITICAL, AlertType.MANUAL_PANIC)
        inactive, active = self._admin(active=False), self._admin()
        policy = AutoEscalationPolicy(enabled=True)
        assert policy.choose_responder(critical, [inactive, active]) is active

    def test_disabled(self, lifecycle):
        critical = lifecycle.create(None, RiskLevel.CRITICAL, AlertType.MANUAL_PANIC)
        policy = AutoEscalationPolicy(enabled=False)
        assert policy.choose_responder(critical, [self._admin()]) is None

    def test_no_admin_available(self, lifecycle, caplog):
        critical = lifecycle.create(None, RiskLevel.CRITICAL, AlertType.MANUAL_PANIC)
        policy = AutoEscalationPolicy(enabled=True)
        assert policy.choose_responder(critical, []) is None
        assert "No active administrator" in caplog.text
