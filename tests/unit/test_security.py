"""
Unit tests for Irtiqa security and error modules.

Tests:
- JWT access tokens
- Role hierarchy
- Domain error bodies
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from irtiqa.db.orm import UserRole
from irtiqa.exceptions import (
    AuthorizationError,
    ConflictError,
    IrtiqaError,
    NotFoundError,
    ValidationError,
)
from irtiqa.security.auth import (
    AuthenticationError,
    User,
    create_access_token,
    has_role,
    require_role,
    verify_access_token,
)


def make_user(role: UserRole = UserRole.USER) -> User:
    return User(id=uuid4(), username="budi", full_name="Budi Santoso", role=role)


class TestAccessTokens:
    """Tests for JWT access tokens."""

    def test_round_trip(self):
        user = make_user(UserRole.CONSULTANT)
        payload = verify_access_token(create_access_token(user))

        assert payload.sub == str(user.id)
        assert payload.role == UserRole.CONSULTANT
        assert payload.name == "Budi Santoso"

    def test_expired_token(self):
        token = create_access_token(make_user(), expires_delta=timedelta(minutes=-5))
        with pytest.raises(AuthenticationError):
            verify_access_token(token)

    def test_tampered_token(self):
        token = create_access_token(make_user())
        with pytest.raises(AuthenticationError):
            verify_access_token(token[:-4] + "AAAA")


class TestRoles:
    """Tests for the role hierarchy."""

    @pytest.mark.parametrize(
        "role,required,allowed",
        [
            (UserRole.USER, UserRole.CONSULTANT, False),
            (UserRole.CONSULTANT, UserRole.CONSULTANT, True),
            (UserRole.ADMIN, UserRole.CONSULTANT, True),
            (UserRole.CONSULTANT, UserRole.ADMIN, False),
            (UserRole.SYSTEM, UserRole.ADMIN, True),
        ],
    )
    def test_has_role(self, role, required, allowed):
        assert has_role(make_user(role), required) is allowed

    def test_require_role_raises(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require_role(make_user(), UserRole.ADMIN)
        assert exc_info.value.status_code == 403

    def test_principal_flags(self):
        assert make_user(UserRole.ADMIN).is_admin
        assert make_user(UserRole.CONSULTANT).is_responder
        assert not make_user().is_responder
        assert make_user().display_name == "Budi Santoso"


class TestDomainErrors:
    """Tests for error status codes and bodies."""

    @pytest.mark.parametrize(
        "error,status_code",
        [
            (ValidationError("bad"), 422),
            (AuthorizationError("no"), 403),
            (ConflictError("late", current_state="resolved"), 409),
            (NotFoundError("Case"), 404),
        ],
    )
    def test_status_codes(self, error, status_code):
        assert isinstance(error, IrtiqaError)
        assert error.status_code == status_code

    def test_conflict_reports_current_state(self):
        body = ConflictError("Cannot move alert", current_state="resolved").to_dict()
        assert body == {
            "error": "Conflict",
            "message": "Cannot move alert",
            "current_state": "resolved",
        }

    def test_not_found_message(self):
        assert NotFoundError("Case").to_dict()["message"] == "Case not found"
