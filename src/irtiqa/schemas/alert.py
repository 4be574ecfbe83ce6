"""
Crisis alert schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from irtiqa.db.orm import AlertStatus, AlertType
from irtiqa.safety.risk import RiskLevel


class CrisisAlertResponse(BaseModel):
    """Response model for a crisis alert."""

    id: UUID
    user_id: Optional[UUID] = None
    case_id: Optional[UUID] = None
    message_id: Optional[str] = None
    alert_type: AlertType
    severity: RiskLevel
    status: AlertStatus
    detected_keywords: list[str]
    context: Optional[str] = None
    assigned_responder_id: Optional[UUID] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
