"""
Case safety for Irtiqa.

Provides:
- Risk scoring of submissions (risk)
- Responder guidance and crisis hotlines (guidance)
- Crisis alert lifecycle and auto-escalation (lifecycle)
- Notification fanout (notifications)
- Escalation orchestration (escalation)

Only the pure modules are re-exported here; the ORM imports RiskLevel and
Urgency from this package.
"""

from irtiqa.safety.risk import (
    RiskAssessment,
    RiskConfig,
    RiskLevel,
    Urgency,
    assess,
)

__all__ = [
    "RiskAssessment",
    "RiskConfig",
    "RiskLevel",
    "Urgency",
    "assess",
]
