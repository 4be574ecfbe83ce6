"""
Consultation API routes.

Provides case intake with risk assessment and case handling.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query
from pydantic import BaseModel, Field

from irtiqa.api.deps import AdminUser, Consultations, ConsultantUser, Fanout, User
from irtiqa.db.orm import CaseStatus
from irtiqa.exceptions import AuthorizationError
from irtiqa.safety.guidance import recommended_actions
from irtiqa.schemas.case import CaseResponse, TeamMemberResponse

router = APIRouter()


class ScreeningAnswer(BaseModel):
    """One structured screening answer."""

    question: Optional[str] = None
    answer: Any = None
    risk_score: Optional[float] = Field(None, ge=0)


class ConsultationCreate(BaseModel):
    """Request model for submitting a consultation."""

    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=10000)
    screening_answers: list[ScreeningAnswer] = Field(default_factory=list)
    urgency: Optional[str] = Field(
        None,
        description="Requested urgency: normal, urgent, emergency (or rendah, sedang, tinggi)",
    )


class AssessmentResponse(BaseModel):
    """Risk assessment summary returned at intake."""

    risk_level: str
    urgency: str
    requires_escalation: bool
    flags: list[str]


class RecommendedActions(BaseModel):
    priority: str
    actions: list[str]
    message: str


class SubmissionResponse(BaseModel):
    """Response model for a new consultation."""

    case: CaseResponse
    assessment: AssessmentResponse
    recommended_actions: RecommendedActions
    alert_id: Optional[UUID] = None


class AssignRequest(BaseModel):
    """Request model for assigning the primary responder."""

    responder_id: UUID


class StatusUpdateRequest(BaseModel):
    """Request model for updating case status."""

    status: CaseStatus = Field(..., description="New status: in_progress, completed, rejected")


@router.post("", response_model=SubmissionResponse, status_code=201)
async def submit_consultation(
    data: ConsultationCreate,
    consultations: Consultations,
    fanout: Fanout,
    background_tasks: BackgroundTasks,
    user: User,
):
    """
    Submit a consultation.

    The submission is scored for crisis indicators. High-risk cases raise a
    crisis alert; responders are notified after the request commits.
    """
    result = await consultations.submit(
        submitter=user,
        category=data.category,
        description=data.description,
        answers=[answer.model_dump(exclude_none=True) for answer in data.screening_answers],
        requested_urgency=data.urgency,
    )

    alert_id = None
    if result.escalation is not None:
        alert, recipients, payload = result.escalation
        alert_id = alert.id
        if recipients:
            background_tasks.add_task(fanout.deliver, recipients, payload)

    assessment = result.assessment.to_dict()
    # Stored urgency includes the requested urgency
    assessment["urgency"] = result.case.urgency.value

    return SubmissionResponse(
        case=CaseResponse.model_validate(result.case),
        assessment=AssessmentResponse(**assessment),
        recommended_actions=RecommendedActions(
            **recommended_actions(result.assessment.risk_level)
        ),
        alert_id=alert_id,
    )


@router.get("", response_model=list[CaseResponse])
async def list_consultations(
    consultations: Consultations,
    user: User,
    scope: str = Query(
        "mine",
        pattern="^(mine|assigned|open)$",
        description="mine: submitted by me, assigned: my team cases, open: admin queue",
    ),
    status: Optional[CaseStatus] = Query(None, description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
):
    """List consultations visible to the current user."""
    offset = (page - 1) * limit
    if scope == "assigned":
        return await consultations.list_for_responder(
            user.id, status=status, limit=limit, offset=offset
        )
    if scope == "open":
        if not user.is_admin:
            raise AuthorizationError("Only administrators can list the open queue")
        return await consultations.list_open(limit=limit, offset=offset)
    return await consultations.list_for_submitter(
        user.id, status=status, limit=limit, offset=offset
    )


@router.get("/{case_id}", response_model=CaseResponse)
async def get_consultation(case_id: UUID, consultations: Consultations, user: User):
    """Get consultation details (submitter, team members and admins only)."""
    return await consultations.get_case(case_id, user)


@router.post("/{case_id}/assign", response_model=TeamMemberResponse, status_code=201)
async def assign_consultation(
    case_id: UUID,
    request: AssignRequest,
    consultations: Consultations,
    admin: AdminUser,
):
    """Assign the first primary responder to a waiting case."""
    entry = await consultations.assign(case_id, request.responder_id, admin)
    return TeamMemberResponse.for_viewer(entry, admin)


@router.post("/{case_id}/status", response_model=CaseResponse)
async def update_consultation_status(
    case_id: UUID,
    request: StatusUpdateRequest,
    consultations: Consultations,
    user: ConsultantUser,
):
    """Primary responder moves the case to in_progress, completed or rejected."""
    return await consultations.update_status(case_id, user, request.status)


@router.post("/{case_id}/cancel", response_model=CaseResponse)
async def cancel_consultation(case_id: UUID, consultations: Consultations, user: User):
    """Submitter cancels a case that is still waiting."""
    return await consultations.cancel(case_id, user)
