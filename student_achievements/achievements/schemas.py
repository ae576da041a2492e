"""
Request and response schemas for the achievement workflow.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..documents.models import AttachmentPointer, DocumentContentUpdate, ensure_bson_ints

MAX_POINTS = 2**31 - 1


class AchievementCreate(BaseModel):
    """Content of a newly reported achievement."""

    achievement_type: str = Field(..., min_length=1, description="e.g. Nasional, Internasional")
    title: str = Field(..., min_length=1)
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    @field_validator("achievement_type", "title")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("details")
    @classmethod
    def storable_details(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return ensure_bson_ints(v)


class AchievementUpdate(DocumentContentUpdate):
    """Partial content update. Fields left out are unchanged."""


class VerifyRequest(BaseModel):
    points: int = Field(..., ge=1, le=MAX_POINTS, description="Points awarded on approval")


class RejectRequest(BaseModel):
    rejection_note: str = Field(..., description="Reason shown to the student")


class StudentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_number: str
    full_name: str
    program_study: Optional[str] = None
    academic_year: Optional[str] = None
    advisor_id: Optional[str] = None


class AchievementReferenceOut(BaseModel):
    """Reference row as returned after a write."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    document_id: str
    status: str
    rejection_note: Optional[str] = None
    verified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


class AchievementDetail(BaseModel):
    """Reference and document merged into one view."""

    id: str
    student: StudentSummary
    achievement_type: str
    title: str
    description: str
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    attachments: List[AttachmentPointer] = Field(default_factory=list)
    points: int = 0
    status: str
    rejection_note: Optional[str] = None
    verified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


class AchievementListItem(BaseModel):
    """One row of a listing. Content fields stay empty if the document is missing."""

    id: str
    student_id: str
    student_name: str
    student_number: str
    achievement_type: str = ""
    title: str = ""
    status: str
    points: int = 0
    created_at: datetime


class PaginatedAchievements(BaseModel):
    data: List[AchievementListItem]
    total: int
    page: int
    page_size: int
    total_pages: int
