"""
Crisis alert API routes.

Admin queue for crisis alerts: list, inspect, acknowledge and resolve.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query
from pydantic import BaseModel, Field

from irtiqa.api.deps import AdminUser, Escalations, Fanout
from irtiqa.db.orm import AlertStatus
from irtiqa.safety.risk import RiskLevel
from irtiqa.schemas.alert import CrisisAlertResponse

router = APIRouter()


class ResolveRequest(BaseModel):
    """Request to resolve an alert."""

    notes: str = Field(
        ...,
        max_length=5000,
        description="What was done to resolve the alert",
    )


class PaginatedAlertsResponse(BaseModel):
    """Paginated alerts response."""

    items: list[CrisisAlertResponse]
    total: int
    page: int
    limit: int


class AlertStatsResponse(BaseModel):
    """Alert counts for the admin dashboard."""

    total: int
    by_status: dict[str, int]
    by_severity: dict[str, int]
    today: int
    last_7_days: int


@router.get("", response_model=PaginatedAlertsResponse)
async def list_alerts(
    escalations: Escalations,
    admin: AdminUser,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=200, description="Items per page"),
    status: Optional[AlertStatus] = Query(None, description="Filter by status"),
    severity: Optional[RiskLevel] = Query(None, description="Filter by severity"),
):
    """
    List crisis alerts with pagination.

    Most severe first, then newest first.
    """
    items, total = await escalations.list_alerts(
        status=status, severity=severity, page=page, per_page=limit
    )
    return PaginatedAlertsResponse(
        items=[CrisisAlertResponse.model_validate(a) for a in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/stats", response_model=AlertStatsResponse)
async def alert_stats(escalations: Escalations, admin: AdminUser):
    """Alert counts by status and severity."""
    return await escalations.stats()


@router.get("/{alert_id}", response_model=CrisisAlertResponse)
async def get_alert(alert_id: UUID, escalations: Escalations, admin: AdminUser):
    """Get a single alert."""
    return await escalations.get_alert(alert_id)


@router.post("/{alert_id}/acknowledge", response_model=CrisisAlertResponse)
async def acknowledge_alert(alert_id: UUID, escalations: Escalations, admin: AdminUser):
    """Take ownership of a pending alert."""
    return await escalations.acknowledge(alert_id, admin)


@router.post("/{alert_id}/resolve", response_model=CrisisAlertResponse)
async def resolve_alert(
    alert_id: UUID,
    request: ResolveRequest,
    escalations: Escalations,
    fanout: Fanout,
    background_tasks: BackgroundTasks,
    admin: AdminUser,
):
    """Resolve an alert. Responders are notified of the resolution."""
    alert, recipients, payload = await escalations.resolve(alert_id, admin, request.notes)
    if recipients:
        background_tasks.add_task(fanout.deliver, recipients, payload)
    return alert
