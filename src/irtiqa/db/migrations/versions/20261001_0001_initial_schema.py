"""Initial schema for Irtiqa case safety and case ownership

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users (profiles only, credentials are external)
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("username", sa.String(100), unique=True, nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('user', 'consultant', 'admin', 'system')", name="ck_users_role"
        ),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # Consultation cases
    op.create_table(
        "cases",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("ticket_number", sa.String(30), unique=True, nullable=False),
        sa.Column("submitter_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("problem_description", sa.Text, nullable=False),
        sa.Column("screening_answers", postgresql.JSONB, server_default="[]"),
        sa.Column("risk_level", sa.String(20), nullable=False, server_default="low"),
        sa.Column("urgency", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("risk_flags", postgresql.JSONB, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("assigned_responder_id", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column("assigned_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "risk_level IN ('low', 'medium', 'high', 'critical')", name="ck_cases_risk_level"
        ),
        sa.CheckConstraint(
            "urgency IN ('normal', 'urgent', 'emergency')", name="ck_cases_urgency"
        ),
        sa.CheckConstraint(
            "status IN ('waiting', 'in_progress', 'completed', 'referred', 'rejected', 'cancelled')",
            name="ck_cases_status",
        ),
    )
    op.create_index("idx_cases_submitter", "cases", ["submitter_id", "created_at"])
    op.create_index("idx_cases_responder", "cases", ["assigned_responder_id"])
    op.create_index("idx_cases_status", "cases", ["status"])

    # Case team membership
    op.create_table(
        "case_team_members",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "case_id", sa.Uuid, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("responder_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="collaborator"),
        sa.Column("invited_by", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column("invited_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("internal_notes", sa.Text),
        sa.Column("handover_notes", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("case_id", "responder_id", name="uq_case_team_member"),
        sa.CheckConstraint(
            "role IN ('primary', 'referred', 'collaborator')", name="ck_case_team_role"
        ),
    )
    # At most one active primary/referred entry per case
    op.create_index(
        "uq_case_team_effective_primary",
        "case_team_members",
        ["case_id"],
        unique=True,
        postgresql_where=sa.text("is_active AND role IN ('primary', 'referred')"),
    )
    op.create_index(
        "idx_case_team_responder", "case_team_members", ["responder_id", "is_active"]
    )

    # Crisis alerts
    op.create_table(
        "crisis_alerts",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column("case_id", sa.Uuid, sa.ForeignKey("cases.id", ondelete="SET NULL")),
        sa.Column("message_id", sa.String(100)),
        sa.Column("alert_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("detected_keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("context", sa.Text),
        sa.Column("assigned_responder_id", sa.Uuid, sa.ForeignKey("users.id")),
        sa.Column("acknowledged_at", sa.DateTime),
        sa.Column("resolved_at", sa.DateTime),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "alert_type IN ('manual_panic', 'keyword_detection', 'system_assessment', 'auto_escalation')",
            name="ck_crisis_alerts_type",
        ),
        sa.CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')", name="ck_crisis_alerts_severity"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'acknowledged', 'resolved')", name="ck_crisis_alerts_status"
        ),
        sa.CheckConstraint(
            "resolved_at IS NULL OR acknowledged_at IS NULL OR acknowledged_at <= resolved_at",
            name="ck_crisis_alerts_ack_before_resolve",
        ),
    )
    op.create_index("idx_crisis_alerts_status", "crisis_alerts", ["status", "severity"])
    op.create_index("idx_crisis_alerts_user", "crisis_alerts", ["user_id", "created_at"])
    op.create_index("idx_crisis_alerts_case", "crisis_alerts", ["case_id"])

    # Audit log
    op.create_table(
        "audit_log",
        sa.Column("sequence_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", sa.Uuid, unique=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.Uuid),
        sa.Column("case_id", sa.Uuid, sa.ForeignKey("cases.id", ondelete="SET NULL")),
        sa.Column("details", postgresql.JSONB, server_default="{}"),
        sa.Column("timestamp", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_user", "audit_log", ["user_id"])
    op.create_index("idx_audit_timestamp", "audit_log", ["timestamp"])
    op.create_index("idx_audit_resource", "audit_log", ["resource_type", "resource_id"])
    op.create_index("idx_audit_case", "audit_log", ["case_id", "sequence_id"])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("audit_log")
    op.drop_table("crisis_alerts")
    op.drop_table("case_team_members")
    op.drop_table("cases")
    op.drop_table("users")
