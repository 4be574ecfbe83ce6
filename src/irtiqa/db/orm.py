"""
SQLAlchemy database models for Irtiqa.

Implements the case-safety and case-ownership model:
- Users (submitters, consultants, administrators)
- Consultation cases with risk assessment results
- Crisis alerts with a bounded pending/acknowledged/resolved lifecycle
- Case team membership (primary, referred, collaborator)
- Audit log recording who held responsibility when

Integrity:
- One team entry per (case, responder)
- At most one active effective primary (primary or referred) per case,
  enforced by a partial unique index
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from irtiqa.db.types import JSONDocument
from irtiqa.safety.risk import RiskLevel, Urgency


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def stored_enum(enum_cls, length: int = 20) -> SQLEnum:
    """Enum column stored as its lower-case value in a VARCHAR."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=_enum_values,
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class UserRole(str, enum.Enum):
    """User roles for RBAC."""
    USER = "user"
    CONSULTANT = "consultant"
    ADMIN = "admin"
    SYSTEM = "system"


RESPONDER_ROLES = (UserRole.CONSULTANT, UserRole.ADMIN)


class CaseStatus(str, enum.Enum):
    """Consultation case lifecycle."""
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REFERRED = "referred"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (CaseStatus.WAITING, CaseStatus.IN_PROGRESS, CaseStatus.REFERRED)


class TeamRole(str, enum.Enum):
    """Role of a responder on a case team."""
    PRIMARY = "primary"
    REFERRED = "referred"
    COLLABORATOR = "collaborator"

    @property
    def is_effective_primary(self) -> bool:
        """A referred responder carries the same authority as the primary."""
        return self in EFFECTIVE_PRIMARY_ROLES


EFFECTIVE_PRIMARY_ROLES = (TeamRole.PRIMARY, TeamRole.REFERRED)


class AlertStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class AlertType(str, enum.Enum):
    MANUAL_PANIC = "manual_panic"
    KEYWORD_DETECTION = "keyword_detection"
    SYSTEM_ASSESSMENT = "system_assessment"
    AUTO_ESCALATION = "auto_escalation"


class User(Base):
    """
    User profile.

    Credentials live with the external identity provider; identity arrives
    as a signed token carrying this row's id.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(stored_enum(UserRole), default=UserRole.USER)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SYSTEM)

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value})>"


class Case(Base):
    """
    Consultation case (ticket).

    Risk level, urgency and flags are written once at submission.
    assigned_responder_id mirrors the team's effective primary and is only
    written together with the team entry change.
    """

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    ticket_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    submitter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )

    # Submission
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    problem_description: Mapped[str] = mapped_column(Text, nullable=False)
    screening_answers: Mapped[list] = mapped_column(JSONDocument, default=list)

    # Risk assessment
    risk_level: Mapped[RiskLevel] = mapped_column(
        stored_enum(RiskLevel), default=RiskLevel.LOW
    )
    urgency: Mapped[Urgency] = mapped_column(stored_enum(Urgency), default=Urgency.NORMAL)
    risk_flags: Mapped[list] = mapped_column(JSONDocument, default=list)

    # Lifecycle
    status: Mapped[CaseStatus] = mapped_column(
        stored_enum(CaseStatus), default=CaseStatus.WAITING
    )
    assigned_responder_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id")
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_cases_submitter", "submitter_id", "created_at"),
        Index("idx_cases_responder", "assigned_responder_id"),
        Index("idx_cases_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Case {self.ticket_number} ({self.status.value})>"


class CaseTeamMember(Base):
    """
    One responder's standing on a case team.

    A collaborator is inert until the submitter approves it. Rejection
    deletes the row; removal deactivates it. Primary and referred entries
    are never removed directly, only replaced through a referral.
    """

    __tablename__ = "case_team_members"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    responder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    role: Mapped[TeamRole] = mapped_column(
        stored_enum(TeamRole), default=TeamRole.COLLABORATOR
    )

    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    invited_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    handover_notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    responder: Mapped["User"] = relationship(
        "User", foreign_keys=[responder_id], lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint("case_id", "responder_id", name="uq_case_team_member"),
        Index(
            "uq_case_team_effective_primary",
            "case_id",
            unique=True,
            postgresql_where=text("is_active AND role IN ('primary', 'referred')"),
            sqlite_where=text("is_active = 1 AND role IN ('primary', 'referred')"),
        ),
        Index("idx_case_team_responder", "responder_id", "is_active"),
    )

    @property
    def is_effective_primary(self) -> bool:
        return self.role.is_effective_primary

    @property
    def is_approved(self) -> bool:
        return self.role.is_effective_primary or self.approved_at is not None

    @property
    def is_pending_approval(self) -> bool:
        return (
            self.is_active
            and self.role == TeamRole.COLLABORATOR
            and self.approved_at is None
        )

    @property
    def can_act(self) -> bool:
        """Check if this member may work on the case."""
        return self.is_active and self.is_approved

    @property
    def responder_name(self) -> Optional[str]:
        return self.responder.full_name if self.responder else None


class CrisisAlert(Base):
    """
    Crisis alert raised by risk assessment, keyword detection or a panic
    button. Once resolved, an alert is immutable.
    """

    __tablename__ = "crisis_alerts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="SET NULL")
    )
    message_id: Mapped[Optional[str]] = mapped_column(String(100))

    alert_type: Mapped[AlertType] = mapped_column(stored_enum(AlertType, length=30))
    severity: Mapped[RiskLevel] = mapped_column(stored_enum(RiskLevel))
    status: Mapped[AlertStatus] = mapped_column(
        stored_enum(AlertStatus), default=AlertStatus.PENDING
    )

    detected_keywords: Mapped[list] = mapped_column(JSONDocument, default=list)
    context: Mapped[Optional[str]] = mapped_column(Text)

    assigned_responder_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id")
    )
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_crisis_alerts_status", "status", "severity"),
        Index("idx_crisis_alerts_user", "user_id", "created_at"),
        Index("idx_crisis_alerts_case", "case_id"),
        CheckConstraint(
            "resolved_at IS NULL OR acknowledged_at IS NULL OR acknowledged_at <= resolved_at",
            name="ck_crisis_alerts_ack_before_resolve",
        ),
    )


class AuditLog(Base):
    """
    Append-only audit log.

    Every team change and every alert transition writes one row in the same
    transaction, so the custody history of a case can be replayed.
    """

    __tablename__ = "audit_log"

    sequence_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, default=uuid.uuid4)

    # Who
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # What
    action: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # 'team.invite', 'team.refer', 'alert.acknowledge', ...
    resource_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # 'case_team_member', 'crisis_alert', 'case'
    resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="SET NULL")
    )

    details: Mapped[dict] = mapped_column(JSONDocument, default=dict)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_user", "user_id"),
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_resource", "resource_type", "resource_id"),
        Index("idx_audit_case", "case_id", "sequence_id"),
    )
