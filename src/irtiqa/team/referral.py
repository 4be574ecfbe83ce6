"""
Case referral: hand case ownership to another responder.

The referrer's primary/referred entry becomes an approved collaborator and
the target becomes the referred owner, in one unit of work. Two refers from
the same stale owner cannot both succeed: the case row lock serialises them,
and the demotion is a compare-and-set on the entry row.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.db.orm import CaseStatus, CaseTeamMember, TeamRole
from irtiqa.db.repositories import TeamRepository
from irtiqa.exceptions import ConflictError, ValidationError
from irtiqa.team.ledger import CaseOwnershipLedger

logger = logging.getLogger(__name__)


class ReferralCoordinator:
    """Transfers effective ownership of a case."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.ledger = CaseOwnershipLedger(session, clock=clock)
        self.team = TeamRepository(session)

    async def refer(
        self,
        case_id: UUID,
        referrer_id: UUID,
        target_id: UUID,
        handover_notes: str,
    ) -> CaseTeamMember:
        """
        Refer a case to another responder.

        Returns:
            The target's entry, now role referred

        Raises:
            ValidationError: Missing notes, self-referral, or target not an
                active consultant
            AuthorizationError: Referrer no longer owns the case
            ConflictError: Ownership changed underneath the referrer
        """
        if not handover_notes or not handover_notes.strip():
            raise ValidationError("Handover notes are required for a referral")
        if referrer_id == target_id:
            raise ValidationError("You cannot refer a case to yourself")

        case = await self.ledger.lock_case(case_id)
        primary = await self.ledger.current_primary_entry_for(case_id, referrer_id)
        self.ledger.require_open(case)
        await self.ledger.require_responder(target_id)

        now = self.ledger.clock()
        if not await self.team.demote_effective_primary(primary.id, now):
            raise ConflictError(
                "Case ownership changed while referring",
                current_state="not_primary",
            )
        await self.session.refresh(primary)

        target = await self.team.find(case_id, target_id)
        if target is not None:
            target.role = TeamRole.REFERRED
            target.is_active = True
            target.approved_at = target.approved_at or now
            target.invited_by = referrer_id
            target.handover_notes = handover_notes.strip()
            target.updated_at = now
            await self.session.flush()
        else:
            target = await self.ledger.add_entry(
                CaseTeamMember(
                    id=uuid4(),
                    case_id=case_id,
                    responder_id=target_id,
                    role=TeamRole.REFERRED,
                    invited_by=referrer_id,
                    invited_at=now,
                    approved_at=now,
                    is_active=True,
                    handover_notes=handover_notes.strip(),
                )
            )

        case.assigned_responder_id = target_id
        case.status = CaseStatus.REFERRED
        case.updated_at = now
        await self.session.flush()

        await self.ledger.record(
            referrer_id,
            "team.refer",
            case,
            target,
            details={
                "from_responder_id": str(referrer_id),
                "handover_notes": target.handover_notes,
            },
        )
        logger.info(f"Case {case.ticket_number} referred from {referrer_id} to {target_id}")
        return target
