"""
FastAPI dependencies for the API.

Provides:
- Database session management
- JWT-based authentication
- Role-based authorization
- Service and notification fanout injection
"""

import logging
import uuid
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from irtiqa.config import settings
from irtiqa.consultation.service import ConsultationService
from irtiqa.db.orm import UserRole
from irtiqa.db.repositories import UserRepository
from irtiqa.exceptions import AuthorizationError
from irtiqa.safety.escalation import EscalationService
from irtiqa.safety.notifications import NotificationFanout
from irtiqa.security.auth import (
    AuthenticationError,
    User as AuthUser,
    require_role,
    verify_access_token,
)
from irtiqa.team.ledger import CaseOwnershipLedger
from irtiqa.team.referral import ReferralCoordinator

logger = logging.getLogger(__name__)


# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session from request state.

    Commits when the request succeeds and rolls back on any exception, so
    every request is one unit of work.
    """
    async with request.app.state.db_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _stored_principal(session: AsyncSession, user_id: uuid.UUID) -> AuthUser:
    """Principal built from the users table; the stored role is authoritative."""
    row = await UserRepository(session).get_by_id(user_id)
    if row is None or not row.is_active:
        logger.warning(f"Rejected credentials for unknown or inactive user {user_id}")
        raise _unauthorized("Unknown or inactive user")
    return AuthUser(
        id=row.id,
        username=row.username,
        full_name=row.full_name,
        role=row.role,
        is_active=row.is_active,
    )


async def get_current_user(
    session: DbSession,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    # Development fallback headers (only work when not in production)
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> AuthUser:
    """
    Get current authenticated user from JWT token.

    In development mode, also accepts an X-User-Id header for testing.
    In production, ONLY JWT tokens are accepted. Either way the user must
    exist and be active in the users table.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if credentials:
        try:
            token_payload = verify_access_token(credentials.credentials)
            user_id = uuid.UUID(token_payload.sub)
        except (AuthenticationError, ValueError) as e:
            logger.warning(f"JWT authentication failed: {e}")
            raise _unauthorized("Invalid or expired token") from e
        return await _stored_principal(session, user_id)

    # Development fallback: accept headers (NOT in production)
    if not settings.is_production and x_user_id:
        logger.warning(
            f"Using development header auth for user: {x_user_id}. "
            "This is disabled in production!"
        )
        try:
            user_id = uuid.UUID(x_user_id)
        except ValueError as e:
            raise _unauthorized("X-User-Id must be a UUID") from e
        return await _stored_principal(session, user_id)

    raise _unauthorized("Authentication required")


# Type alias for dependency injection
User = Annotated[AuthUser, Depends(get_current_user)]


def _role_checked(required: UserRole):
    async def dependency(user: User) -> AuthUser:
        try:
            require_role(user, required)
            return user
        except AuthorizationError as e:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=e.message,
            ) from e

    dependency.__name__ = f"require_{required.value}"
    return dependency


require_consultant = _role_checked(UserRole.CONSULTANT)
require_admin = _role_checked(UserRole.ADMIN)

# Role-checked user types
ConsultantUser = Annotated[AuthUser, Depends(require_consultant)]
AdminUser = Annotated[AuthUser, Depends(require_admin)]


def get_consultation_service(session: DbSession) -> ConsultationService:
    """Get consultation service."""
    return ConsultationService(session, settings)


def get_escalation_service(session: DbSession) -> EscalationService:
    """Get escalation service."""
    return EscalationService(session, settings)


def get_ledger(session: DbSession) -> CaseOwnershipLedger:
    """Get case ownership ledger."""
    return CaseOwnershipLedger(session)


def get_referral_coordinator(session: DbSession) -> ReferralCoordinator:
    """Get referral coordinator."""
    return ReferralCoordinator(session)


def get_fanout(request: Request) -> NotificationFanout:
    """Get the notification fanout created at startup."""
    return request.app.state.notification_fanout


# Type aliases for services
Consultations = Annotated[ConsultationService, Depends(get_consultation_service)]
Escalations = Annotated[EscalationService, Depends(get_escalation_service)]
Ledger = Annotated[CaseOwnershipLedger, Depends(get_ledger)]
Referrals = Annotated[ReferralCoordinator, Depends(get_referral_coordinator)]
Fanout = Annotated[NotificationFanout, Depends(get_fanout)]
