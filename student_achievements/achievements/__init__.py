"""
Achievement workflow: lifecycle engine, policy, and API routes.

The service layer lives in ``achievements.services``; this package root only
exports the vocabulary shared with the stores and the attachment uploader.
"""

from .enums import AchievementStatus, Operation, Permission, ReconciliationAction, Role
from .errors import (
    AchievementError,
    AuthenticationError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    "AchievementError",
    "AchievementStatus",
    "AuthenticationError",
    "DatabaseError",
    "NotFoundError",
    "Operation",
    "Permission",
    "PermissionDeniedError",
    "ReconciliationAction",
    "Role",
    "ValidationError",
]
