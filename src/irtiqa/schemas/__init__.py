"""
Pydantic schemas shared by the API routes.
"""

from irtiqa.schemas.alert import CrisisAlertResponse
from irtiqa.schemas.case import CaseResponse, TeamMemberResponse

__all__ = [
    "CaseResponse",
    "CrisisAlertResponse",
    "TeamMemberResponse",
]
