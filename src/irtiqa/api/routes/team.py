"""
Case team API routes.

Invite, approve, reject, refer and remove case team members.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from irtiqa.api.deps import ConsultantUser, Ledger, Referrals, User
from irtiqa.schemas.case import TeamMemberResponse

router = APIRouter()


class InviteRequest(BaseModel):
    """Request model for inviting a collaborator."""

    responder_id: UUID
    notes: Optional[str] = Field(None, max_length=2000)


class ReferRequest(BaseModel):
    """Request model for referring a case."""

    responder_id: UUID
    handover_notes: str = Field(..., max_length=5000)


@router.get("/consultations/{case_id}/team", response_model=list[TeamMemberResponse])
async def list_team(case_id: UUID, ledger: Ledger, user: User):
    """Active team of a case: primary, referred, then collaborators."""
    entries = await ledger.list_active(case_id, user)
    return [TeamMemberResponse.for_viewer(entry, user) for entry in entries]


@router.post(
    "/consultations/{case_id}/team/invite",
    response_model=TeamMemberResponse,
    status_code=201,
)
async def invite_member(
    case_id: UUID,
    request: InviteRequest,
    ledger: Ledger,
    user: ConsultantUser,
):
    """Primary responder invites a collaborator (pending submitter approval)."""
    entry = await ledger.invite(case_id, user.id, request.responder_id, request.notes)
    return TeamMemberResponse.for_viewer(entry, user)


@router.post(
    "/consultations/{case_id}/team/{entry_id}/approve",
    response_model=TeamMemberResponse,
)
async def approve_member(case_id: UUID, entry_id: UUID, ledger: Ledger, user: User):
    """Submitter approves a pending collaborator."""
    entry = await ledger.approve(case_id, user.id, entry_id)
    return TeamMemberResponse.for_viewer(entry, user)


@router.post("/consultations/{case_id}/team/{entry_id}/reject", status_code=204)
async def reject_member(case_id: UUID, entry_id: UUID, ledger: Ledger, user: User):
    """Submitter rejects a pending collaborator."""
    await ledger.reject(case_id, user.id, entry_id)
    return Response(status_code=204)


@router.post(
    "/consultations/{case_id}/team/refer",
    response_model=TeamMemberResponse,
)
async def refer_case(
    case_id: UUID,
    request: ReferRequest,
    referrals: Referrals,
    user: ConsultantUser,
):
    """Hand ownership of the case to another responder."""
    entry = await referrals.refer(
        case_id, user.id, request.responder_id, request.handover_notes
    )
    return TeamMemberResponse.for_viewer(entry, user)


@router.delete(
    "/consultations/{case_id}/team/{entry_id}",
    response_model=TeamMemberResponse,
)
async def remove_member(
    case_id: UUID,
    entry_id: UUID,
    ledger: Ledger,
    user: ConsultantUser,
):
    """Primary responder removes a collaborator."""
    entry = await ledger.remove(case_id, user.id, entry_id)
    return TeamMemberResponse.for_viewer(entry, user)


@router.get("/team/pending-approvals", response_model=list[TeamMemberResponse])
async def pending_approvals(ledger: Ledger, user: User):
    """Collaborator invitations waiting for the current user's approval."""
    entries = await ledger.pending_approvals(user.id)
    return [TeamMemberResponse.for_viewer(entry, user) for entry in entries]
