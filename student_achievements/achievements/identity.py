"""
Identity resolution: map authenticated user ids onto student and lecturer
profiles.

Profiles are owned by the user-management side of the system; this module
only reads them.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from sqlalchemy.orm import Session

from ..db.models import LecturerModel, StudentModel
from .enums import Role


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, as carried by the access token."""

    user_id: str
    role: Role
    username: str = ""
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class StudentInfo:
    id: str
    user_id: str
    student_number: str
    full_name: str
    advisor_id: Optional[str]

    @classmethod
    def from_model(cls, model: StudentModel) -> "StudentInfo":
        return cls(
            id=model.id,
            user_id=model.user_id,
            student_number=model.student_number,
            full_name=model.full_name,
            advisor_id=model.advisor_id,
        )


@dataclass(frozen=True)
class LecturerInfo:
    id: str
    user_id: str
    lecturer_number: str
    full_name: str

    @classmethod
    def from_model(cls, model: LecturerModel) -> "LecturerInfo":
        return cls(
            id=model.id,
            user_id=model.user_id,
            lecturer_number=model.lecturer_number,
            full_name=model.full_name,
        )


class IdentityResolver:
    """Read-only lookup of student and lecturer profiles."""

    def __init__(self, db: Session):
        self.db = db

    def get_student_by_user_id(self, user_id: str) -> Optional[StudentInfo]:
        """Return the student profile of a user, or None."""
        model = self.db.query(StudentModel).filter(StudentModel.user_id == user_id).first()
        return StudentInfo.from_model(model) if model else None

    def get_lecturer_by_user_id(self, user_id: str) -> Optional[LecturerInfo]:
        """Return the lecturer profile of a user, or None."""
        model = (
            self.db.query(LecturerModel).filter(LecturerModel.user_id == user_id).first()
        )
        return LecturerInfo.from_model(model) if model else None

    def get_student(self, student_id: str) -> Optional[StudentInfo]:
        """Return a student profile by internal id, or None."""
        model = self.db.query(StudentModel).filter(StudentModel.id == student_id).first()
        return StudentInfo.from_model(model) if model else None
