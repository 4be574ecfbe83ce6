"""
Case and case team schemas.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from irtiqa.db.orm import CaseStatus, CaseTeamMember, TeamRole
from irtiqa.safety.risk import RiskLevel, Urgency
from irtiqa.security.auth import User as AuthUser


class CaseResponse(BaseModel):
    """Response model for a consultation case."""

    id: UUID
    ticket_number: str
    submitter_id: UUID
    category: str
    problem_description: str
    screening_answers: list[dict[str, Any]]
    risk_level: RiskLevel
    urgency: Urgency
    risk_flags: list[str]
    status: CaseStatus
    assigned_responder_id: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TeamPermissions(BaseModel):
    """What the responder on an entry may do on the case."""

    can_invite_collaborators: bool
    can_refer_case: bool
    can_close_case: bool
    can_view_internal_notes: bool
    can_send_messages: bool

    @classmethod
    def for_entry(cls, entry: CaseTeamMember) -> "TeamPermissions":
        owner = entry.is_active and entry.is_effective_primary
        return cls(
            can_invite_collaborators=owner,
            can_refer_case=owner,
            can_close_case=owner,
            can_view_internal_notes=entry.can_act,
            can_send_messages=entry.can_act,
        )


class TeamMemberResponse(BaseModel):
    """Response model for a case team entry."""

    id: UUID
    case_id: UUID
    responder_id: UUID
    responder_name: Optional[str] = None
    role: TeamRole
    invited_by: Optional[UUID] = None
    invited_at: datetime
    approved_at: Optional[datetime] = None
    is_active: bool
    is_approved: bool
    is_pending_approval: bool
    internal_notes: Optional[str] = None
    handover_notes: Optional[str] = None
    permissions: Optional[TeamPermissions] = None

    class Config:
        from_attributes = True

    @classmethod
    def for_viewer(cls, entry: CaseTeamMember, viewer: AuthUser) -> "TeamMemberResponse":
        """Serialize an entry. Internal notes are only shown to responders."""
        response = cls.model_validate(entry)
        response.permissions = TeamPermissions.for_entry(entry)
        if not viewer.is_responder:
            response.internal_notes = None
        return response
