"""
Database package for Student Achievements.
"""

from .audit_models import AuditLogModel
from .audit_service import AuditService
from .base import Base, get_db, get_engine, get_session_local
from .models import (
    AchievementReferenceModel,
    LecturerModel,
    ReconciliationEntryModel,
    StudentModel,
)

__all__ = [
    "AchievementReferenceModel",
    "AuditLogModel",
    "AuditService",
    "Base",
    "LecturerModel",
    "ReconciliationEntryModel",
    "StudentModel",
    "get_db",
    "get_engine",
    "get_session_local",
]
