"""
Crisis API routes.

Panic button, crisis hotlines and chat message keyword scanning.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks
from pydantic import BaseModel, Field

from irtiqa.api.deps import Consultations, Escalations, Fanout, User
from irtiqa.config import settings
from irtiqa.safety.guidance import PANIC_ACKNOWLEDGEMENT, hotlines, immediate_actions, primary_hotline
from irtiqa.schemas.alert import CrisisAlertResponse

router = APIRouter()


class PanicRequest(BaseModel):
    """Request model for the panic button."""

    context: Optional[str] = Field(None, max_length=1000)
    case_id: Optional[UUID] = None


class Hotline(BaseModel):
    name: str
    number: str
    description: Optional[str] = None
    type: Optional[str] = None


class PanicResponse(BaseModel):
    """Response model for the panic button."""

    message: str
    alert: CrisisAlertResponse
    hotline: Hotline
    immediate_actions: list[str]


class ScanRequest(BaseModel):
    """Request model for scanning a chat message."""

    case_id: UUID
    text: str = Field(..., min_length=1, max_length=10000)
    message_id: Optional[str] = Field(None, max_length=100)


class ScanResponse(BaseModel):
    detected: bool
    alert: Optional[CrisisAlertResponse] = None


@router.post("/panic", response_model=PanicResponse, status_code=201)
async def panic_button(
    request: PanicRequest,
    escalations: Escalations,
    fanout: Fanout,
    background_tasks: BackgroundTasks,
    user: User,
):
    """
    Manual crisis alert.

    Always critical. Administrators are notified once the request commits.
    """
    alert, recipients, payload = await escalations.trigger_panic(
        user, context=request.context, case_id=request.case_id
    )
    if recipients:
        background_tasks.add_task(fanout.deliver, recipients, payload)

    return PanicResponse(
        message=PANIC_ACKNOWLEDGEMENT,
        alert=CrisisAlertResponse.model_validate(alert),
        hotline=Hotline(**primary_hotline(settings)),
        immediate_actions=immediate_actions(settings),
    )


@router.get("/hotlines", response_model=list[Hotline])
async def get_hotlines():
    """Crisis hotlines, national line first."""
    return hotlines(settings)


@router.post("/scan", response_model=ScanResponse)
async def scan_message(
    request: ScanRequest,
    consultations: Consultations,
    escalations: Escalations,
    fanout: Fanout,
    background_tasks: BackgroundTasks,
    user: User,
):
    """Scan a chat message on a case for crisis keywords."""
    # Raises NotFoundError unless the user takes part in the case
    await consultations.get_case(request.case_id, user)

    escalation = await escalations.scan_message(
        request.text,
        user_id=user.id,
        case_id=request.case_id,
        message_id=request.message_id,
    )
    if escalation is None:
        return ScanResponse(detected=False)

    alert, recipients, payload = escalation
    if recipients:
        background_tasks.add_task(fanout.deliver, recipients, payload)
    return ScanResponse(detected=True, alert=CrisisAlertResponse.model_validate(alert))
