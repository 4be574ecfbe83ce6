"""
Property-based tests for case ownership.

Random sequences of team operations, each in its own transaction, must
never leave a case with more or less than one effective primary, and the
case's assigned responder must always match that entry.
"""

import asyncio
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy.pool import StaticPool

from irtiqa.config import settings as app_settings
from irtiqa.consultation.service import ConsultationService
from irtiqa.db import Base, UserRole, create_engine, create_session_factory
from irtiqa.db.repositories import CaseRepository, TeamRepository, UserRepository
from irtiqa.exceptions import IrtiqaError
from irtiqa.security.auth import User as AuthUser
from irtiqa.team.ledger import CaseOwnershipLedger
from irtiqa.team.referral import ReferralCoordinator

CONSULTANTS = 4

OPERATIONS = st.lists(
    st.tuples(
        st.sampled_from(["refer", "invite", "approve", "reject", "remove"]),
        st.integers(min_value=0, max_value=CONSULTANTS - 1),
        st.integers(min_value=0, max_value=CONSULTANTS - 1),
    ),
    max_size=15,
)


async def _principal(session, role, name) -> AuthUser:
    user = await UserRepository(session).create(
        username=f"{name}-{uuid4().hex[:8]}",
        email=f"{uuid4().hex[:12]}@irtiqa.test",
        full_name=name,
        role=role,
    )
    return AuthUser(id=user.id, username=user.username, full_name=name, role=role)


async def _apply(session, op, actor, target, case_id, submitter) -> None:
    ledger = CaseOwnershipLedger(session)
    if op == "refer":
        await ReferralCoordinator(session).refer(case_id, actor.id, target.id, "handover")
    elif op == "invite":
        await ledger.invite(case_id, actor.id, target.id)
    else:
        entry = await TeamRepository(session).find(case_id, target.id)
        if entry is None:
            return
        if op == "approve":
            await ledger.approve(case_id, submitter.id, entry.id)
        elif op == "reject":
            await ledger.reject(case_id, submitter.id, entry.id)
        else:
            await ledger.remove(case_id, actor.id, entry.id)


async def _run(operations) -> None:
    engine = create_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = create_session_factory(engine)

        async with factory() as session:
            admin = await _principal(session, UserRole.ADMIN, "admin")
            submitter = await _principal(session, UserRole.USER, "submitter")
            consultants = [
                await _principal(session, UserRole.CONSULTANT, f"consultant-{i}")
                for i in range(CONSULTANTS)
            ]
            service = ConsultationService(session, app_settings)
            case = (await service.submit(submitter, "family", "Butuh teman bicara")).case
            await service.assign(case.id, consultants[0].id, admin)
            await session.commit()

        for op, actor_index, target_index in operations:
            async with factory() as session:
                try:
                    await _apply(
                        session,
                        op,
                        consultants[actor_index],
                        consultants[target_index],
                        case.id,
                        submitter,
                    )
                    await session.commit()
                except IrtiqaError:
                    await session.rollback()

            async with factory() as session:
                team = TeamRepository(session)
                assert await team.count_effective_primaries(case.id) == 1
                owner = await team.find_effective_primary(case.id)
                stored = await CaseRepository(session).get_by_id(case.id)
                assert stored.assigned_responder_id == owner.responder_id
                for entry in await team.list_active(case.id):
                    if not entry.is_effective_primary:
                        assert entry.role.value == "collaborator"
    finally:
        await engine.dispose()


class TestOwnershipProperties:
    """Invariants over arbitrary team operation sequences."""

    @given(operations=OPERATIONS)
    @settings(max_examples=30, deadline=None)
    def test_exactly_one_effective_primary(self, operations):
        asyncio.run(_run(operations))
