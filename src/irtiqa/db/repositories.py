"""
Database repositories for data access layer.

Repositories only read and write rows. Business rules (who may change a
team, which alert transitions are legal) live in the services.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case as sql_case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.db.orm import (
    EFFECTIVE_PRIMARY_ROLES,
    AlertStatus,
    AuditLog,
    Case,
    CaseStatus,
    CaseTeamMember,
    CrisisAlert,
    TeamRole,
    User,
    UserRole,
    RESPONDER_ROLES,
)
from irtiqa.safety.risk import RiskLevel, Urgency

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_active_responder(self, user_id: UUID) -> Optional[User]:
        """Get a user only if it is an active consultant or admin."""
        result = await self.session.execute(
            select(User).where(
                User.id == user_id,
                User.is_active.is_(True),
                User.role.in_(RESPONDER_ROLES),
            )
        )
        return result.scalar_one_or_none()

    async def list_admins(self) -> list[User]:
        """Active administrators, oldest account first."""
        result = await self.session.execute(
            select(User)
            .where(User.role == UserRole.ADMIN, User.is_active.is_(True))
            .order_by(User.created_at, User.id)
        )
        return list(result.scalars().all())

    async def create(
        self,
        username: str,
        email: str,
        full_name: str,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        """Create a new user."""
        user = User(
            username=username,
            email=email,
            full_name=full_name,
            role=role,
            is_active=is_active,
        )
        self.session.add(user)
        await self.session.flush()
        return user


class CaseRepository:
    """Repository for Case operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, case_id: UUID) -> Optional[Case]:
        """Get case by ID."""
        result = await self.session.execute(select(Case).where(Case.id == case_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, case_id: UUID) -> Optional[Case]:
        """
        Get case by ID and lock the row until the transaction ends.

        Every team mutation takes this lock first, so mutations on one case
        run one at a time.
        """
        result = await self.session.execute(
            select(Case)
            .where(Case.id == case_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, case: Case) -> Case:
        """Persist a new case."""
        self.session.add(case)
        await self.session.flush()
        return case

    async def list_for_submitter(
        self,
        submitter_id: UUID,
        status: Optional[CaseStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Case]:
        stmt = select(Case).where(Case.submitter_id == submitter_id)
        if status:
            stmt = stmt.where(Case.status == status)
        stmt = stmt.order_by(Case.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_responder(
        self,
        responder_id: UUID,
        status: Optional[CaseStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Case]:
        """Cases where the responder holds an active, approved team entry."""
        membership = select(CaseTeamMember.case_id).where(
            CaseTeamMember.responder_id == responder_id,
            CaseTeamMember.is_active.is_(True),
            or_(
                CaseTeamMember.role.in_(EFFECTIVE_PRIMARY_ROLES),
                CaseTeamMember.approved_at.is_not(None),
            ),
        )
        stmt = select(Case).where(Case.id.in_(membership))
        if status:
            stmt = stmt.where(Case.status == status)
        stmt = stmt.order_by(Case.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_open(self, limit: int = 50, offset: int = 0) -> list[Case]:
        """Open cases, most urgent first (admin queue)."""
        urgency_rank = sql_case(
            (Case.urgency == Urgency.EMERGENCY, 0),
            (Case.urgency == Urgency.URGENT, 1),
            else_=2,
        )
        result = await self.session.execute(
            select(Case)
            .where(Case.status.in_([s for s in CaseStatus if s.is_open]))
            .order_by(urgency_rank, Case.created_at)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())


class TeamRepository:
    """Repository for case team membership rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, entry_id: UUID) -> Optional[CaseTeamMember]:
        result = await self.session.execute(
            select(CaseTeamMember)
            .where(CaseTeamMember.id == entry_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find(self, case_id: UUID, responder_id: UUID) -> Optional[CaseTeamMember]:
        """The (at most one) entry of a responder on a case, active or not."""
        result = await self.session.execute(
            select(CaseTeamMember)
            .where(
                CaseTeamMember.case_id == case_id,
                CaseTeamMember.responder_id == responder_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_effective_primary(
        self,
        case_id: UUID,
        responder_id: Optional[UUID] = None,
    ) -> Optional[CaseTeamMember]:
        """Active primary or referred entry of a case, optionally for one responder."""
        stmt = select(CaseTeamMember).where(
            CaseTeamMember.case_id == case_id,
            CaseTeamMember.is_active.is_(True),
            CaseTeamMember.role.in_(EFFECTIVE_PRIMARY_ROLES),
        )
        if responder_id is not None:
            stmt = stmt.where(CaseTeamMember.responder_id == responder_id)
        result = await self.session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active(self, case_id: UUID) -> list[CaseTeamMember]:
        """Active entries ordered primary, referred, collaborator, then by invite time."""
        role_rank = sql_case(
            (CaseTeamMember.role == TeamRole.PRIMARY, 0),
            (CaseTeamMember.role == TeamRole.REFERRED, 1),
            else_=2,
        )
        result = await self.session.execute(
            select(CaseTeamMember)
            .where(
                CaseTeamMember.case_id == case_id,
                CaseTeamMember.is_active.is_(True),
            )
            .order_by(role_rank, CaseTeamMember.invited_at, CaseTeamMember.id)
        )
        return list(result.scalars().all())

    async def count_effective_primaries(self, case_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(CaseTeamMember)
            .where(
                CaseTeamMember.case_id == case_id,
                CaseTeamMember.is_active.is_(True),
                CaseTeamMember.role.in_(EFFECTIVE_PRIMARY_ROLES),
            )
        )
        return result.scalar_one()

    async def pending_for_submitter(self, submitter_id: UUID) -> list[CaseTeamMember]:
        """Unapproved collaborator invitations across a submitter's cases."""
        result = await self.session.execute(
            select(CaseTeamMember)
            .join(Case, Case.id == CaseTeamMember.case_id)
            .where(
                Case.submitter_id == submitter_id,
                CaseTeamMember.is_active.is_(True),
                CaseTeamMember.role == TeamRole.COLLABORATOR,
                CaseTeamMember.approved_at.is_(None),
            )
            .order_by(CaseTeamMember.invited_at)
        )
        return list(result.scalars().all())

    async def add(self, entry: CaseTeamMember) -> CaseTeamMember:
        """
        Insert an entry inside a SAVEPOINT.

        Raises sqlalchemy.exc.IntegrityError when the (case, responder) pair
        or the effective-primary index is already taken; only the savepoint
        is rolled back.
        """
        async with self.session.begin_nested():
            self.session.add(entry)
            await self.session.flush()
        await self.session.refresh(entry, attribute_names=["responder"])
        return entry

    async def demote_effective_primary(self, entry_id: UUID, now: datetime) -> bool:
        """
        Compare-and-set: turn an effective primary entry into an approved
        collaborator.

        Returns False when the row is no longer an active primary/referred
        entry (someone else changed it first).
        """
        result = await self.session.execute(
            update(CaseTeamMember)
            .where(
                CaseTeamMember.id == entry_id,
                CaseTeamMember.is_active.is_(True),
                CaseTeamMember.role.in_(EFFECTIVE_PRIMARY_ROLES),
            )
            .values(
                role=TeamRole.COLLABORATOR,
                approved_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(self, entry: CaseTeamMember) -> None:
        await self.session.delete(entry)
        await self.session.flush()


class CrisisAlertRepository:
    """Repository for CrisisAlert operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, alert_id: UUID) -> Optional[CrisisAlert]:
        """Get alert by ID."""
        result = await self.session.execute(
            select(CrisisAlert).where(CrisisAlert.id == alert_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, alert_id: UUID) -> Optional[CrisisAlert]:
        """Get alert by ID and lock the row until the transaction ends."""
        result = await self.session.execute(
            select(CrisisAlert)
            .where(CrisisAlert.id == alert_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, alert: CrisisAlert) -> CrisisAlert:
        """Persist a new alert."""
        self.session.add(alert)
        await self.session.flush()
        return alert

    def _filtered(self, stmt, status: Optional[AlertStatus], severity: Optional[RiskLevel]):
        if status:
            stmt = stmt.where(CrisisAlert.status == status)
        if severity:
            stmt = stmt.where(CrisisAlert.severity == severity)
        return stmt

    async def list(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[RiskLevel] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[CrisisAlert]:
        """List alerts, most severe and newest first."""
        severity_rank = sql_case(
            (CrisisAlert.severity == RiskLevel.CRITICAL, 0),
            (CrisisAlert.severity == RiskLevel.HIGH, 1),
            (CrisisAlert.severity == RiskLevel.MEDIUM, 2),
            else_=3,
        )
        stmt = self._filtered(select(CrisisAlert), status, severity)
        stmt = (
            stmt.order_by(severity_rank, CrisisAlert.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[RiskLevel] = None,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(CrisisAlert), status, severity
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def count_by(self, column) -> dict[str, int]:
        """Group counts by status or severity."""
        result = await self.session.execute(
            select(column, func.count()).select_from(CrisisAlert).group_by(column)
        )
        return {
            (key.value if hasattr(key, "value") else str(key)): count
            for key, count in result.all()
        }

    async def count_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(CrisisAlert)
            .where(CrisisAlert.created_at >= since)
        )
        return result.scalar_one()


class AuditLogRepository:
    """Repository for AuditLog operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        user_id: str,
        user_name: str,
        action: str,
        resource_type: str,
        resource_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        case_id: Optional[UUID] = None,
    ) -> AuditLog:
        """Create an audit log entry."""
        log = AuditLog(
            user_id=user_id,
            user_name=user_name,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            case_id=case_id,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def get_for_case(self, case_id: UUID, limit: int = 100) -> list[AuditLog]:
        """Custody history of a case, oldest first."""
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.case_id == case_id)
            .order_by(AuditLog.sequence_id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_for_resource(
        self,
        resource_type: str,
        resource_id: UUID,
        limit: int = 100,
    ) -> list[AuditLog]:
        """Get audit logs for a specific resource."""
        result = await self.session.execute(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.sequence_id)
            .limit(limit)
        )
        return list(result.scalars().all())
