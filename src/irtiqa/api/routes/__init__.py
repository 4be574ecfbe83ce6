"""
API route modules.
"""

from irtiqa.api.routes.alerts import router as alerts_router
from irtiqa.api.routes.consultations import router as consultations_router
from irtiqa.api.routes.crisis import router as crisis_router
from irtiqa.api.routes.team import router as team_router

__all__ = [
    "alerts_router",
    "consultations_router",
    "crisis_router",
    "team_router",
]
