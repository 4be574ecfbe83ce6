"""
Consultation case intake and handling.

Intake scores the submission, stores the result on the case and escalates
high-risk cases in the same transaction. Case handling covers status moves
by the owning responder and cancellation by the submitter.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.db.orm import Case, CaseStatus, CaseTeamMember
from irtiqa.db.repositories import AuditLogRepository, CaseRepository
from irtiqa.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from irtiqa.safety.escalation import Escalation, EscalationService
from irtiqa.safety.risk import RiskAssessment, RiskConfig, Urgency, assess
from irtiqa.security.auth import User as AuthUser
from irtiqa.team.ledger import CaseOwnershipLedger

logger = logging.getLogger(__name__)


# Urgency labels accepted at intake (Indonesian labels from the mobile client)
REQUESTED_URGENCY = {
    "rendah": Urgency.NORMAL,
    "sedang": Urgency.URGENT,
    "tinggi": Urgency.EMERGENCY,
    "normal": Urgency.NORMAL,
    "urgent": Urgency.URGENT,
    "emergency": Urgency.EMERGENCY,
}

# Status moves open to the owning responder
RESPONDER_TRANSITIONS: dict[CaseStatus, tuple[CaseStatus, ...]] = {
    CaseStatus.WAITING: (CaseStatus.IN_PROGRESS, CaseStatus.REJECTED),
    CaseStatus.IN_PROGRESS: (CaseStatus.COMPLETED, CaseStatus.REJECTED),
    CaseStatus.REFERRED: (CaseStatus.IN_PROGRESS, CaseStatus.COMPLETED, CaseStatus.REJECTED),
    CaseStatus.COMPLETED: (),
    CaseStatus.REJECTED: (),
    CaseStatus.CANCELLED: (),
}

TICKET_ALPHABET = string.ascii_uppercase + string.digits


def generate_ticket_number(now: datetime) -> str:
    """TKT + timestamp + four random characters, e.g. TKT20261019143005Q7KD."""
    suffix = "".join(secrets.choice(TICKET_ALPHABET) for _ in range(4))
    return f"TKT{now.strftime('%Y%m%d%H%M%S')}{suffix}"


def parse_requested_urgency(value: Union[Urgency, str, None]) -> Optional[Urgency]:
    if value is None:
        return None
    if isinstance(value, Urgency):
        return value
    try:
        return REQUESTED_URGENCY[value.strip().lower()]
    except KeyError as e:
        allowed = ", ".join(REQUESTED_URGENCY)
        raise ValidationError(f"Unknown urgency '{value}'. Allowed: {allowed}") from e


@dataclass
class SubmissionResult:
    """A new case with its risk assessment and optional escalation."""

    case: Case
    assessment: RiskAssessment
    escalation: Optional[Escalation] = None


class ConsultationService:
    """Intake and handling of consultation cases."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Any,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock or datetime.utcnow
        self.cases = CaseRepository(session)
        self.audit = AuditLogRepository(session)
        self.ledger = CaseOwnershipLedger(session, clock=self.clock)
        self.escalations = EscalationService(session, settings)

    async def submit(
        self,
        submitter: AuthUser,
        category: str,
        description: str,
        answers: Optional[list[dict[str, Any]]] = None,
        requested_urgency: Union[Urgency, str, None] = None,
    ) -> SubmissionResult:
        """
        Create a case from a submission.

        Urgency is the higher of the computed and the requested urgency.

        Raises:
            ValidationError: Missing category/description or unknown urgency
        """
        if not category or not category.strip():
            raise ValidationError("Category is required")
        if not description or not description.strip():
            raise ValidationError("Problem description is required")
        requested = parse_requested_urgency(requested_urgency)

        assessment = assess(description, answers, RiskConfig.from_settings(self.settings))
        urgency = assessment.urgency
        if requested is not None and requested.rank > urgency.rank:
            urgency = requested

        now = self.clock()
        case = await self.cases.create(
            Case(
                id=uuid4(),
                ticket_number=generate_ticket_number(now),
                submitter_id=submitter.id,
                category=category.strip(),
                problem_description=description,
                screening_answers=list(answers or []),
                risk_level=assessment.risk_level,
                urgency=urgency,
                risk_flags=list(assessment.flags),
                status=CaseStatus.WAITING,
                created_at=now,
                updated_at=now,
            )
        )
        await self.audit.log(
            user_id=str(submitter.id),
            user_name=submitter.display_name,
            action="case.submit",
            resource_type="case",
            resource_id=case.id,
            case_id=case.id,
            details=assessment.to_dict(),
        )

        escalation = await self.escalations.escalate_submission(case, assessment)
        logger.info(
            f"Case {case.ticket_number} submitted: risk={assessment.risk_level.value} "
            f"urgency={urgency.value} escalated={escalation is not None}"
        )
        return SubmissionResult(case=case, assessment=assessment, escalation=escalation)

    async def get_case(self, case_id: UUID, viewer: AuthUser) -> Case:
        """Raises NotFoundError for missing and invisible cases alike."""
        case = await self.cases.get_by_id(case_id)
        if case is None or not await self.ledger.is_visible_to(case, viewer):
            raise NotFoundError("Case")
        return case

    async def list_for_submitter(self, submitter_id: UUID, **filters) -> list[Case]:
        return await self.cases.list_for_submitter(submitter_id, **filters)

    async def list_for_responder(self, responder_id: UUID, **filters) -> list[Case]:
        return await self.cases.list_for_responder(responder_id, **filters)

    async def list_open(self, **filters) -> list[Case]:
        return await self.cases.list_open(**filters)

    async def assign(self, case_id: UUID, responder_id: UUID, admin: AuthUser) -> CaseTeamMember:
        """Admin assigns the first primary responder."""
        return await self.ledger.assign_primary(case_id, responder_id, assigned_by=admin.id)

    async def update_status(
        self,
        case_id: UUID,
        actor: AuthUser,
        status: Union[CaseStatus, str],
    ) -> Case:
        """
        Owning responder moves the case along.

        Raises:
            AuthorizationError: Actor does not own the case
            ConflictError: Transition not allowed from the current status
        """
        try:
            status = CaseStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown status '{status}'") from e

        case = await self.ledger.lock_case(case_id)
        await self.ledger.current_primary_entry_for(case_id, actor.id)

        current = CaseStatus(case.status)
        if status not in RESPONDER_TRANSITIONS[current]:
            raise ConflictError(
                f"Cannot move case from {current.value} to {status.value}",
                current_state=current.value,
            )

        now = self.clock()
        case.status = status
        case.updated_at = now
        if status == CaseStatus.COMPLETED:
            case.completed_at = now
        await self.session.flush()

        await self.audit.log(
            user_id=str(actor.id),
            user_name=actor.display_name,
            action="case.status",
            resource_type="case",
            resource_id=case.id,
            case_id=case.id,
            details={"from": current.value, "to": status.value},
        )
        return case

    async def cancel(self, case_id: UUID, submitter: AuthUser) -> Case:
        """
        Submitter withdraws a case that nobody has picked up yet.

        Raises:
            ConflictError: Case is no longer waiting
        """
        case = await self.ledger.lock_case(case_id)
        if case.submitter_id != submitter.id:
            if await self.ledger.is_visible_to(case, submitter):
                raise AuthorizationError("Only the submitter can cancel a case")
            raise NotFoundError("Case")
        if case.status != CaseStatus.WAITING:
            raise ConflictError(
                "Only waiting cases can be cancelled",
                current_state=case.status.value,
            )

        now = self.clock()
        case.status = CaseStatus.CANCELLED
        case.updated_at = now
        await self.session.flush()

        await self.audit.log(
            user_id=str(submitter.id),
            user_name=submitter.display_name,
            action="case.cancel",
            resource_type="case",
            resource_id=case.id,
            case_id=case.id,
        )
        return case
