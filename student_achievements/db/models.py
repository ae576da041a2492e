"""
SQLAlchemy models for Student Achievements.

The relational store owns identity, ownership and workflow status of every
achievement. Narrative content lives in the document store and is linked by
``AchievementReferenceModel.document_id``.
"""

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..primitives import generate_ulid, isoformat
from .base import Base


achievement_status_enum = Enum(
    "draft",
    "submitted",
    "verified",
    "rejected",
    "deleted",
    name="achievement_status",
)

reconciliation_action_enum = Enum(
    "delete_document",
    "delete_file",
    "apply_points",
    name="reconciliation_action",
)


class LecturerModel(Base):
    """Lecturer profile. Read by the identity resolver, never written by the workflow."""

    __tablename__ = "lecturers"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    user_id = Column(String(128), nullable=False, unique=True, index=True)
    lecturer_number = Column(String(32), nullable=False, unique=True)
    full_name = Column(String(256), nullable=False)
    department = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    advisees = relationship("StudentModel", back_populates="advisor")

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "lecturer_number": self.lecturer_number,
            "full_name": self.full_name,
            "department": self.department,
        }


class StudentModel(Base):
    """Student profile with the assigned advisor (lecturer)."""

    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    user_id = Column(String(128), nullable=False, unique=True, index=True)
    student_number = Column(String(32), nullable=False, unique=True)
    full_name = Column(String(256), nullable=False)
    program_study = Column(String(128), nullable=True)
    academic_year = Column(String(16), nullable=True)
    advisor_id = Column(
        String(36), ForeignKey("lecturers.id"), nullable=True, index=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    advisor = relationship("LecturerModel", back_populates="advisees")
    achievements = relationship("AchievementReferenceModel", back_populates="student")

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "student_number": self.student_number,
            "full_name": self.full_name,
            "program_study": self.program_study,
            "academic_year": self.academic_year,
            "advisor_id": self.advisor_id,
        }


class AchievementReferenceModel(Base):
    """Authoritative workflow record of an achievement.

    ``status`` is only ever changed through guarded (compare-and-set) updates,
    see ``ReferenceStore.transition``.
    """

    __tablename__ = "achievement_references"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    student_id = Column(
        String(36), ForeignKey("students.id"), nullable=False, index=True
    )
    document_id = Column(String(64), nullable=False, unique=True)
    status = Column(achievement_status_enum, nullable=False, default="draft", index=True)

    # Review outcome
    rejection_note = Column(Text, nullable=True)
    verified_by = Column(String(36), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("StudentModel", back_populates="achievements")

    __table_args__ = (
        Index("ix_achievement_references_student_status", "student_id", "status"),
        Index("ix_achievement_references_created_at", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "document_id": self.document_id,
            "status": self.status,
            "rejection_note": self.rejection_note,
            "verified_by": self.verified_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "submitted_at": isoformat(self.submitted_at),
            "verified_at": isoformat(self.verified_at),
        }


class ReconciliationEntryModel(Base):
    """Pending repair of a cross-store inconsistency.

    Written when a compensation (undo) or a follow-up write to the document
    store fails. Replayed by the ``reconcile`` CLI command.
    """

    __tablename__ = "achievement_reconciliation"

    id = Column(String(36), primary_key=True, default=generate_ulid)
    action = Column(reconciliation_action_enum, nullable=False, index=True)
    achievement_id = Column(String(36), nullable=True, index=True)
    document_id = Column(String(64), nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "action": self.action,
            "achievement_id": self.achievement_id,
            "document_id": self.document_id,
            "payload": self.payload,
            "error": self.error,
            "attempts": self.attempts,
            "created_at": isoformat(self.created_at),
            "resolved_at": isoformat(self.resolved_at),
        }
