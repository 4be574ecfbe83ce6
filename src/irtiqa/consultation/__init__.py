"""
Consultation case intake and handling.
"""

from irtiqa.consultation.service import ConsultationService, SubmissionResult

__all__ = [
    "ConsultationService",
    "SubmissionResult",
]
