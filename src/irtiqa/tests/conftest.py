"""
Pytest configuration and shared fixtures for Irtiqa tests.

Provides:
- In-memory SQLite engine with the full schema (one per test)
- Users in every role, stored in the users table
- Cases in the waiting and assigned states
- A recording notification sink
- An HTTP client bound to the FastAPI app
"""

from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from irtiqa.config import settings as app_settings
from irtiqa.consultation.service import ConsultationService
from irtiqa.db import Base, UserRole, create_engine, create_session_factory
from irtiqa.db.repositories import UserRepository
from irtiqa.safety.notifications import NotificationFanout, NotificationSink
from irtiqa.security.auth import User as AuthUser

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class RecordingSink(NotificationSink):
    """Keeps every notification; raises for responders listed in fail_for."""

    def __init__(self):
        self.sent: list[tuple[UUID, dict[str, Any]]] = []
        self.fail_for: set[UUID] = set()

    async def notify(self, responder_id: UUID, payload: dict[str, Any]) -> None:
        if responder_id in self.fail_for:
            raise RuntimeError(f"sink unavailable for {responder_id}")
        self.sent.append((responder_id, payload))

    def recipients(self, event: str = None) -> list[UUID]:
        return [r for r, p in self.sent if event is None or p["event"] == event]


async def create_principal(session: AsyncSession, role: UserRole, name: str) -> AuthUser:
    """Store a user row and return the matching request principal."""
    slug = f"{name.lower().replace(' ', '-')}-{uuid4().hex[:8]}"
    user = await UserRepository(session).create(
        username=slug,
        email=f"{slug}@irtiqa.test",
        full_name=name,
        role=role,
    )
    return AuthUser(id=user.id, username=user.username, full_name=user.full_name, role=user.role)


def auth_headers(user: AuthUser) -> dict[str, str]:
    """Development header auth for the API client."""
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def settings():
    """Application settings."""
    return app_settings


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    eng = create_engine(TEST_DB_URL, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for one test. Fixtures commit their setup."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def admin(db) -> AuthUser:
    user = await create_principal(db, UserRole.ADMIN, "Admin Ayu")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def submitter(db) -> AuthUser:
    user = await create_principal(db, UserRole.USER, "Budi Santoso")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def consultant_a(db) -> AuthUser:
    user = await create_principal(db, UserRole.CONSULTANT, "Consultant A")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def consultant_b(db) -> AuthUser:
    user = await create_principal(db, UserRole.CONSULTANT, "Consultant B")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def consultant_c(db) -> AuthUser:
    user = await create_principal(db, UserRole.CONSULTANT, "Consultant C")
    await db.commit()
    return user


@pytest_asyncio.fixture
async def waiting_case(db, settings, submitter, admin):
    """A low-risk case nobody has picked up yet."""
    result = await ConsultationService(db, settings).submit(
        submitter=submitter,
        category="family",
        description="Sering bertengkar dengan orang tua soal sekolah",
    )
    await db.commit()
    return result.case


@pytest_asyncio.fixture
async def assigned_case(db, settings, waiting_case, admin, consultant_a):
    """The waiting case with consultant A as primary responder."""
    await ConsultationService(db, settings).assign(waiting_case.id, consultant_a.id, admin)
    await db.commit()
    return waiting_case


@pytest.fixture
def headers():
    """Returns a function building auth headers for a principal."""
    return auth_headers


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def client(session_factory, sink) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app, wired to the test database and sink."""
    from irtiqa.main import app

    app.state.db_session = session_factory
    app.state.notification_fanout = NotificationFanout(sink, timeout_seconds=1.0)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
