"""
Error taxonomy for the achievement workflow.

Every failure that leaves the workflow service is one of these types. Store
exceptions are translated to ``DatabaseError`` before they reach the transport
layer, and ``DatabaseError`` never carries internal detail in its message.
"""

from typing import Any, Dict, Optional


class AchievementError(Exception):
    """Base class for typed workflow failures.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
        status_code: HTTP-equivalent status
    """

    code = "ACHIEVEMENT_ERROR"
    status_code = 500

    def __init__(self, message: str, errors: Optional[Any] = None):
        self.message = message
        self.errors = errors
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.errors is not None:
            data["errors"] = self.errors
        return data


class ValidationError(AchievementError):
    """Bad input, illegal transition, ownership or advising mismatch."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(AchievementError):
    """Missing, malformed, invalid or expired bearer token."""

    code = "AUTHENTICATION_ERROR"
    status_code = 401


class PermissionDeniedError(AchievementError):
    """Token lacks the permission a route requires."""

    code = "PERMISSION_DENIED"
    status_code = 403


class NotFoundError(AchievementError):
    """Reference, document or student absent."""

    code = "NOT_FOUND"
    status_code = 404


class DatabaseError(AchievementError):
    """Any underlying store failure not otherwise classified."""

    code = "DATABASE_ERROR"
    status_code = 500

    GENERIC_MESSAGE = "An internal error occurred, please try again later"

    def __init__(self, message: str = GENERIC_MESSAGE):
        super().__init__(message)
