"""
Case ownership ledger.

Tracks which responders work on a case and in what capacity:

- primary: the responder owning the case
- referred: owner by referral, same authority as primary
- collaborator: invited helper, inert until the submitter approves

A case has no owner while waiting and exactly one active primary/referred
entry from its first assignment on. Every mutation locks the case row
first, writes one audit row, and runs in the caller's transaction.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.db.orm import Case, CaseStatus, CaseTeamMember, TeamRole
from irtiqa.db.repositories import (
    AuditLogRepository,
    CaseRepository,
    TeamRepository,
    UserRepository,
)
from irtiqa.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from irtiqa.security.auth import User as AuthUser

logger = logging.getLogger(__name__)


def entry_state(entry: CaseTeamMember) -> str:
    """Short description of an entry for conflict reports."""
    if not entry.is_active:
        return "inactive"
    if entry.role == TeamRole.COLLABORATOR:
        return "approved" if entry.approved_at else "pending_approval"
    return entry.role.value


class CaseOwnershipLedger:
    """Invite, approve, reject and remove case team members."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.clock = clock or datetime.utcnow
        self.cases = CaseRepository(session)
        self.team = TeamRepository(session)
        self.users = UserRepository(session)
        self.audit = AuditLogRepository(session)

    # ------------------------------------------------------------------
    # Guards and lookups
    # ------------------------------------------------------------------

    async def lock_case(self, case_id: UUID) -> Case:
        """SELECT ... FOR UPDATE on the case row."""
        case = await self.cases.get_for_update(case_id)
        if case is None:
            raise NotFoundError("Case")
        return case

    async def current_primary_entry_for(
        self,
        case_id: UUID,
        responder_id: UUID,
    ) -> CaseTeamMember:
        """
        The responder's active primary/referred entry on the case.

        Raises:
            AuthorizationError: The responder does not own the case
        """
        entry = await self.team.find_effective_primary(case_id, responder_id)
        if entry is None:
            raise AuthorizationError("Only the case's primary responder can do this")
        return entry

    async def is_visible_to(self, case: Case, viewer: AuthUser) -> bool:
        """Submitter, active team members and administrators see a case."""
        if viewer.is_admin or case.submitter_id == viewer.id:
            return True
        entry = await self.team.find(case.id, viewer.id)
        return entry is not None and entry.is_active

    async def _is_visible_to_id(self, case: Case, user_id: UUID) -> bool:
        user = await self.users.get_by_id(user_id)
        if user is not None and user.is_admin:
            return True
        entry = await self.team.find(case.id, user_id)
        return entry is not None and entry.is_active

    async def _get_entry(self, case_id: UUID, entry_id: UUID) -> CaseTeamMember:
        entry = await self.team.get_by_id(entry_id)
        if entry is None or entry.case_id != case_id:
            raise NotFoundError("Team member")
        return entry

    def require_open(self, case: Case) -> None:
        if not CaseStatus(case.status).is_open:
            raise ConflictError(
                f"Case {case.ticket_number} is {case.status.value}",
                current_state=case.status.value,
            )

    async def require_responder(self, responder_id: UUID):
        responder = await self.users.get_active_responder(responder_id)
        if responder is None:
            raise ValidationError("Target must be an active consultant")
        return responder

    async def add_entry(self, entry: CaseTeamMember) -> CaseTeamMember:
        """Insert a team row; a lost race on the unique keys becomes a conflict."""
        try:
            return await self.team.add(entry)
        except IntegrityError as e:
            logger.warning(f"Team insert for case {entry.case_id} lost a race: {e.orig}")
            raise ConflictError(
                "Responder is already on this case team",
                current_state="member",
            ) from e

    async def record(
        self,
        actor_id: UUID,
        action: str,
        case: Case,
        entry: Optional[CaseTeamMember] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Write the audit row for a team change."""
        actor = await self.users.get_by_id(actor_id)
        await self.audit.log(
            user_id=str(actor_id),
            user_name=actor.full_name if actor else str(actor_id),
            action=action,
            resource_type="case_team_member",
            resource_id=entry.id if entry else None,
            case_id=case.id,
            details={
                "responder_id": str(entry.responder_id) if entry else None,
                "role": entry.role.value if entry else None,
                **(details or {}),
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_active(self, case_id: UUID, viewer: AuthUser) -> list[CaseTeamMember]:
        """Active team, ordered primary, referred, collaborator, then by invite time."""
        case = await self.cases.get_by_id(case_id)
        if case is None or not await self.is_visible_to(case, viewer):
            raise NotFoundError("Case")
        return await self.team.list_active(case_id)

    async def pending_approvals(self, submitter_id: UUID) -> list[CaseTeamMember]:
        return await self.team.pending_for_submitter(submitter_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def assign_primary(
        self,
        case_id: UUID,
        responder_id: UUID,
        assigned_by: UUID,
    ) -> CaseTeamMember:
        """
        First assignment of a waiting case.

        Raises:
            ConflictError: The case already has an owner or is closed
            ValidationError: The responder is not an active consultant
        """
        case = await self.lock_case(case_id)
        self.require_open(case)
        current = await self.team.find_effective_primary(case_id)
        if current is not None:
            raise ConflictError(
                "Case already has a primary responder",
                current_state=current.role.value,
            )
        await self.require_responder(responder_id)

        now = self.clock()
        entry = await self.team.find(case_id, responder_id)
        if entry is not None:
            entry.role = TeamRole.PRIMARY
            entry.is_active = True
            entry.approved_at = entry.approved_at or now
            entry.updated_at = now
            await self.session.flush()
        else:
            entry = await self.add_entry(
                CaseTeamMember(
                    id=uuid4(),
                    case_id=case_id,
                    responder_id=responder_id,
                    role=TeamRole.PRIMARY,
                    invited_by=assigned_by,
                    invited_at=now,
                    approved_at=now,
                    is_active=True,
                )
            )

        case.assigned_responder_id = responder_id
        case.assigned_at = now
        case.status = CaseStatus.IN_PROGRESS
        case.updated_at = now
        await self.session.flush()

        await self.record(assigned_by, "team.assign_primary", case, entry)
        logger.info(f"Case {case.ticket_number} assigned to {responder_id}")
        return entry

    async def invite(
        self,
        case_id: UUID,
        inviter_id: UUID,
        target_id: UUID,
        notes: Optional[str] = None,
    ) -> CaseTeamMember:
        """
        Invite a collaborator. The entry stays inert until the submitter approves.

        Raises:
            ValidationError: Self-invite or target is not an active consultant
            AuthorizationError: Inviter does not own the case
            ConflictError: Target already has an entry on this case
        """
        if inviter_id == target_id:
            raise ValidationError("You cannot invite yourself")

        case = await self.lock_case(case_id)
        await self.current_primary_entry_for(case_id, inviter_id)
        self.require_open(case)
        await self.require_responder(target_id)

        existing = await self.team.find(case_id, target_id)
        if existing is not None:
            raise ConflictError(
                "Responder is already on this case team",
                current_state=entry_state(existing),
            )

        now = self.clock()
        entry = await self.add_entry(
            CaseTeamMember(
                id=uuid4(),
                case_id=case_id,
                responder_id=target_id,
                role=TeamRole.COLLABORATOR,
                invited_by=inviter_id,
                invited_at=now,
                approved_at=None,
                is_active=True,
                internal_notes=notes,
            )
        )

        await self.record(inviter_id, "team.invite", case, entry)
        logger.info(f"Case {case.ticket_number}: {inviter_id} invited {target_id}")
        return entry

    async def _pending_entry_for_submitter(
        self,
        case_id: UUID,
        approver_user_id: UUID,
        entry_id: UUID,
    ) -> tuple[Case, CaseTeamMember]:
        case = await self.lock_case(case_id)
        if case.submitter_id != approver_user_id:
            if not await self._is_visible_to_id(case, approver_user_id):
                raise NotFoundError("Case")
            raise AuthorizationError("Only the case submitter can approve collaborators")
        entry = await self._get_entry(case_id, entry_id)
        if not entry.is_pending_approval:
            raise ConflictError(
                "Team member is not awaiting approval",
                current_state=entry_state(entry),
            )
        return case, entry

    async def approve(
        self,
        case_id: UUID,
        approver_user_id: UUID,
        entry_id: UUID,
    ) -> CaseTeamMember:
        """Submitter approves a pending collaborator."""
        case, entry = await self._pending_entry_for_submitter(case_id, approver_user_id, entry_id)

        now = self.clock()
        entry.approved_at = now
        entry.updated_at = now
        await self.session.flush()

        await self.record(approver_user_id, "team.approve", case, entry)
        return entry

    async def reject(
        self,
        case_id: UUID,
        approver_user_id: UUID,
        entry_id: UUID,
    ) -> None:
        """Submitter rejects a pending collaborator. The entry is deleted."""
        case, entry = await self._pending_entry_for_submitter(case_id, approver_user_id, entry_id)

        await self.record(approver_user_id, "team.reject", case, entry)
        await self.team.delete(entry)

    async def remove(
        self,
        case_id: UUID,
        acting_id: UUID,
        entry_id: UUID,
    ) -> CaseTeamMember:
        """
        Owner deactivates a collaborator.

        Raises:
            AuthorizationError: Actor does not own the case
            ConflictError: Target is the owner or already inactive
        """
        case = await self.lock_case(case_id)
        await self.current_primary_entry_for(case_id, acting_id)
        entry = await self._get_entry(case_id, entry_id)

        if entry.is_effective_primary:
            raise ConflictError(
                "The primary responder can only be replaced by referral",
                current_state=entry.role.value,
            )
        if not entry.is_active:
            raise ConflictError("Team member was already removed", current_state="inactive")

        now = self.clock()
        entry.is_active = False
        entry.updated_at = now
        await self.session.flush()

        await self.record(acting_id, "team.remove", case, entry)
        return entry
