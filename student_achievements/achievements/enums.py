"""
Canonical enums for the achievement workflow.

Role values are the exact strings carried in the ``role`` claim of access
tokens issued by the authentication service.
"""

from enum import Enum


class AchievementStatus(str, Enum):
    """Workflow status of an achievement reference."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DELETED = "deleted"


class Role(str, Enum):
    """Roles known to the workflow."""

    STUDENT = "Mahasiswa"
    ADVISOR = "Dosen Wali"
    ADMIN = "Admin"

    @property
    def actor_kind(self) -> str:
        """Actor kind used in the audit log."""
        return {
            Role.STUDENT: "student",
            Role.ADVISOR: "advisor",
            Role.ADMIN: "admin",
        }[self]


class Operation(str, Enum):
    """Workflow operations subject to the capability table."""

    CREATE = "create"
    EDIT = "edit"
    UPLOAD_ATTACHMENT = "upload_attachment"
    SUBMIT = "submit"
    DELETE = "delete"
    VERIFY = "verify"
    REJECT = "reject"
    VIEW = "view"
    LIST = "list"


class VisibilityScope(str, Enum):
    """Which achievements a role may read."""

    OWN = "own"
    ADVISEES = "advisees"
    ALL = "all"


class ReconciliationAction(str, Enum):
    """Repairs queued when a cross-store write cannot be completed or undone."""

    DELETE_DOCUMENT = "delete_document"
    DELETE_FILE = "delete_file"
    APPLY_POINTS = "apply_points"


class Permission(str, Enum):
    """Token permissions checked at the HTTP boundary."""

    ACHIEVEMENT_CREATE = "achievement:create"
    ACHIEVEMENT_VERIFY = "achievement:verify"
