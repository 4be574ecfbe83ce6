"""
Domain errors raised by the safety and case-ownership services.

The API layer maps each class to one HTTP status (see irtiqa.main).
"""

from typing import Any, Optional


class IrtiqaError(Exception):
    """Base class for domain errors."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.details)
        return body


class ValidationError(IrtiqaError):
    """Raised when input is malformed. No state was changed."""

    status_code = 422
    error = "Validation error"


class AuthorizationError(IrtiqaError):
    """Raised when the actor lacks the role or relationship to the case."""

    status_code = 403
    error = "Forbidden"


class ConflictError(IrtiqaError):
    """Raised on an illegal state transition."""

    status_code = 409
    error = "Conflict"

    def __init__(self, message: str, current_state: Optional[str] = None, **details: Any):
        super().__init__(message, current_state=current_state, **details)
        self.current_state = current_state


class NotFoundError(IrtiqaError):
    """
    Raised when a resource does not exist or is not visible to the actor.

    The message never distinguishes the two cases.
    """

    status_code = 404
    error = "Not found"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource
