"""
Risk scoring for consultation submissions.

Combines two signals into one risk tier:
- Crisis keywords found in the free-text problem description
- Numeric risk scores attached to structured screening answers

The scorer is a pure function. Keywords and thresholds arrive as an
immutable RiskConfig so the same input always yields the same output.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    """Risk tiers, also used as crisis alert severities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    @classmethod
    def highest(cls, *levels: Optional["RiskLevel"]) -> "RiskLevel":
        present = [level for level in levels if level is not None]
        if not present:
            return cls.LOW
        return max(present, key=lambda level: level.rank)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class Urgency(str, Enum):
    """How quickly a case needs a responder."""

    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _URGENCY_ORDER.index(self)


_URGENCY_ORDER = [Urgency.NORMAL, Urgency.URGENT, Urgency.EMERGENCY]


@dataclass(frozen=True)
class RiskConfig:
    """Immutable scoring configuration."""

    keywords: tuple[str, ...] = ()
    answer_critical: float = 8
    answer_high: float = 5
    answer_medium: float = 3
    urgency_emergency: float = 7
    urgency_urgent: float = 4
    keyword_critical: int = 3
    keyword_high: int = 2
    keyword_medium: int = 1

    @classmethod
    def from_settings(cls, settings: Any) -> "RiskConfig":
        """Snapshot the relevant settings into a config object."""
        return cls(
            keywords=tuple(settings.crisis_keywords),
            answer_critical=settings.answer_critical_threshold,
            answer_high=settings.answer_high_threshold,
            answer_medium=settings.answer_medium_threshold,
            urgency_emergency=settings.urgency_emergency_threshold,
            urgency_urgent=settings.urgency_urgent_threshold,
        )


@dataclass(frozen=True)
class RiskAssessment:
    """Result of scoring one submission."""

    risk_level: RiskLevel = RiskLevel.LOW
    urgency: Urgency = Urgency.NORMAL
    requires_escalation: bool = False
    flags: tuple[str, ...] = field(default_factory=tuple)
    answer_score: float = 0.0
    keyword_level: Optional[RiskLevel] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "urgency": self.urgency.value,
            "requires_escalation": self.requires_escalation,
            "flags": list(self.flags),
            "answer_score": self.answer_score,
            "keyword_level": self.keyword_level.value if self.keyword_level else None,
        }


def match_keywords(text: Optional[str], keywords: Iterable[str]) -> list[str]:
    """Return the keywords contained in text, in configuration order."""
    if not text or not isinstance(text, str):
        return []
    lowered = text.lower()
    matches: list[str] = []
    for keyword in keywords:
        needle = keyword.strip().lower()
        if needle and needle in lowered and needle not in matches:
            matches.append(needle)
    return matches


def sum_answer_scores(answers: Optional[Iterable[Any]]) -> float:
    """
    Sum numeric risk_score values from structured answers.

    Answers may be mappings or objects with a risk_score attribute.
    Non-numeric scores (including booleans) are ignored.
    """
    if not answers or isinstance(answers, (str, bytes, Mapping)):
        return 0.0
    try:
        answers = list(answers)
    except TypeError:
        return 0.0
    total = 0.0
    for answer in answers:
        if isinstance(answer, Mapping):
            score = answer.get("risk_score")
        else:
            score = getattr(answer, "risk_score", None)
        if isinstance(score, bool) or not isinstance(score, Real):
            continue
        total += float(score)
    return total


def keyword_level(count: int, config: RiskConfig) -> Optional[RiskLevel]:
    """Map a keyword match count to a tier. None means no keyword signal."""
    if count >= config.keyword_critical:
        return RiskLevel.CRITICAL
    if count >= config.keyword_high:
        return RiskLevel.HIGH
    if count >= config.keyword_medium:
        return RiskLevel.MEDIUM
    return None


def answer_level(score: float, config: RiskConfig) -> RiskLevel:
    """Map a structured-answer score sum to a tier."""
    if score >= config.answer_critical:
        return RiskLevel.CRITICAL
    if score >= config.answer_high:
        return RiskLevel.HIGH
    if score >= config.answer_medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def answer_urgency(score: float, config: RiskConfig) -> Urgency:
    """Map a structured-answer score sum to an urgency."""
    if score >= config.urgency_emergency:
        return Urgency.EMERGENCY
    if score >= config.urgency_urgent:
        return Urgency.URGENT
    return Urgency.NORMAL


def assess(
    text: Optional[str],
    answers: Optional[Iterable[Any]] = None,
    config: RiskConfig = RiskConfig(),
) -> RiskAssessment:
    """
    Score a submission.

    Args:
        text: Free-text problem description
        answers: Structured screening answers ({answer, risk_score} pairs)
        config: Keywords and thresholds

    Returns:
        RiskAssessment. Escalation is required when any keyword matched or
        the answer tier is high or critical. Never raises.
    """
    flags = match_keywords(text, config.keywords)
    score = sum_answer_scores(answers)

    by_keywords = keyword_level(len(flags), config)
    by_answers = answer_level(score, config)
    level = RiskLevel.highest(by_answers, by_keywords)

    requires_escalation = bool(flags) or by_answers in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    return RiskAssessment(
        risk_level=level,
        urgency=answer_urgency(score, config),
        requires_escalation=requires_escalation,
        flags=tuple(flags),
        answer_score=score,
        keyword_level=by_keywords,
    )
