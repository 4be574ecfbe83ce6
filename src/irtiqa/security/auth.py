"""
Authentication and Authorization for Irtiqa.

Implements:
- JWT bearer token verification
- Role-based access control (RBAC)

Login, password storage and token issuing belong to the external identity
provider. create_access_token exists for service accounts and tests.
"""

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, Field

from irtiqa.config import settings
from irtiqa.db.orm import UserRole
from irtiqa.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


ROLE_HIERARCHY = {
    UserRole.USER: 0,
    UserRole.CONSULTANT: 1,
    UserRole.ADMIN: 2,
    UserRole.SYSTEM: 3,
}


class TokenType(str, Enum):
    """Types of JWT tokens."""
    ACCESS = "access"


class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str                          # User ID
    type: TokenType                   # Token type
    role: UserRole                    # User role
    name: Optional[str] = None        # Display name
    exp: datetime                     # Expiration time
    iat: datetime = Field(default_factory=datetime.utcnow)  # Issued at


class User(BaseModel):
    """Authenticated principal for one request."""
    id: uuid.UUID
    username: str
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    @property
    def is_admin(self) -> bool:
        return ROLE_HIERARCHY[self.role] >= ROLE_HIERARCHY[UserRole.ADMIN]

    @property
    def is_responder(self) -> bool:
        return self.role in (UserRole.CONSULTANT, UserRole.ADMIN)


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user: User to create token for
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    payload = TokenPayload(
        sub=str(user.id),
        type=TokenType.ACCESS,
        role=user.role,
        name=user.full_name,
        exp=datetime.utcnow() + expires_delta,
    )

    claims = payload.model_dump(mode="json")
    # jose expects numeric dates; it converts datetimes itself
    claims["exp"] = payload.exp
    claims["iat"] = payload.iat

    return jwt.encode(
        claims,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        AuthenticationError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(**payload)
    except (JWTError, ValueError) as e:
        logger.warning(f"JWT decode failed: {e}")
        raise AuthenticationError("Invalid or expired token") from e


def verify_access_token(token: str) -> TokenPayload:
    """
    Verify an access token.

    Raises:
        AuthenticationError: If token is invalid, expired, or wrong type
    """
    payload = decode_token(token)

    if payload.type != TokenType.ACCESS:
        raise AuthenticationError("Invalid token type")

    return payload


def has_role(user: User, required_role: UserRole) -> bool:
    return ROLE_HIERARCHY.get(user.role, -1) >= ROLE_HIERARCHY.get(required_role, 99)


def require_role(user: User, required_role: UserRole) -> None:
    """
    Check if user has the required role or higher.

    Raises:
        AuthorizationError: If user doesn't have required role
    """
    if not has_role(user, required_role):
        raise AuthorizationError(
            f"Insufficient permissions. Required: {required_role.value}, "
            f"Current: {user.role.value}"
        )
