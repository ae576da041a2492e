"""
Document-store schema for achievement content.

The document never carries workflow status; that lives on the relational
reference only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..primitives import utc_now

# BSON integers are signed 64-bit
BSON_INT_MIN = -(2**63)
BSON_INT_MAX = 2**63 - 1


def ensure_bson_ints(value: Any, path: str = "details") -> Any:
    """Reject integers anywhere in ``value`` that BSON cannot encode."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if not BSON_INT_MIN <= value <= BSON_INT_MAX:
            raise ValueError(f"{path}: integer out of range for storage")
    elif isinstance(value, dict):
        for key, item in value.items():
            ensure_bson_ints(item, f"{path}.{key}")
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            ensure_bson_ints(item, f"{path}[{index}]")
    return value


class AttachmentPointer(BaseModel):
    """Pointer to a stored proof file."""

    model_config = ConfigDict(extra="ignore")

    file_name: str = Field(..., description="Generated storage file name")
    file_url: str = Field(..., description="Public URL of the stored file")
    file_type: str = Field(..., description="Declared content type")
    uploaded_at: datetime = Field(default_factory=utc_now)


class AchievementDocument(BaseModel):
    """Narrative content of an achievement."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(None, description="Document id (hex ObjectId)")
    student_id: str = Field(..., description="Denormalized owning student id")
    achievement_type: str = ""
    title: str = ""
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    attachments: List[AttachmentPointer] = Field(default_factory=list)
    points: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class DocumentContentUpdate(BaseModel):
    """Partial content update. Only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    achievement_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None

    @field_validator("achievement_type", "title")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("details")
    @classmethod
    def storable_details(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return ensure_bson_ints(v) if v is not None else v

    def changes(self) -> Dict[str, Any]:
        """Return the supplied, non-null fields."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }
