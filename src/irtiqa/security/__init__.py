"""
Irtiqa Security Module

Provides JWT authentication and role-based authorization.
"""

from irtiqa.security.auth import (
    AuthenticationError,
    ROLE_HIERARCHY,
    TokenPayload,
    User,
    create_access_token,
    decode_token,
    has_role,
    require_role,
    verify_access_token,
)

__all__ = [
    "AuthenticationError",
    "ROLE_HIERARCHY",
    "TokenPayload",
    "User",
    "create_access_token",
    "decode_token",
    "has_role",
    "require_role",
    "verify_access_token",
]
