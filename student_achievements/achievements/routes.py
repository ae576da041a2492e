"""
Achievement API Routes.

Every endpoint requires a bearer token. Write endpoints are additionally gated
on the ``achievement:create`` or ``achievement:verify`` permission; ownership,
advising and visibility are decided by the workflow service.

Responses use the envelope ``{status, message, data}``.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ..attachments.uploader import AttachmentUploader, IncomingFile, get_attachment_uploader
from ..db.base import get_db
from ..documents.base import get_document_repository
from ..documents.repository import AchievementDocumentRepository
from .auth import get_current_user, require_permission
from .enums import Permission
from .identity import CurrentUser
from .schemas import AchievementCreate, AchievementUpdate, RejectRequest, VerifyRequest
from .services import AchievementWorkflowService

router = APIRouter(prefix="/achievements", tags=["Achievements"])
students_router = APIRouter(prefix="/students", tags=["Achievements"])

can_report = require_permission(Permission.ACHIEVEMENT_CREATE)
can_review = require_permission(Permission.ACHIEVEMENT_VERIFY)


def envelope(message: str, data: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "success", "message": message}
    if data is not None:
        body["data"] = data
    return body


def get_workflow_service(
    db: Session = Depends(get_db),
    documents: AchievementDocumentRepository = Depends(get_document_repository),
    uploader: AttachmentUploader = Depends(get_attachment_uploader),
) -> AchievementWorkflowService:
    return AchievementWorkflowService(db, documents, uploader)


# =============================================================================
# Read Endpoints
# =============================================================================


@router.get("")
def list_achievements(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    status: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """List achievements visible to the caller."""
    result = service.get_all(user, page=page, limit=limit, search=search, status=status)
    return envelope("Achievements retrieved", result.model_dump(mode="json"))


@router.get("/{achievement_id}")
def get_achievement(
    achievement_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Get achievement detail. Deleted achievements remain readable."""
    detail = service.get_detail(achievement_id, user)
    return envelope("Achievement detail retrieved", detail.model_dump(mode="json"))


@students_router.get("/{student_id}/achievements")
def list_student_achievements(
    student_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """List one student's achievements."""
    result = service.get_by_student(student_id, user, page=page, limit=limit, status=status)
    return envelope("Student achievements retrieved", result.model_dump(mode="json"))


# =============================================================================
# Student Endpoints
# =============================================================================


@router.post("", status_code=201)
def create_achievement(
    payload: AchievementCreate,
    user: CurrentUser = Depends(can_report),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Report a new achievement as a draft."""
    reference = service.create(user, payload)
    return envelope(
        "Achievement created as draft, please upload proof",
        reference.model_dump(mode="json"),
    )


@router.put("/{achievement_id}")
def update_achievement(
    achievement_id: str,
    payload: AchievementUpdate,
    user: CurrentUser = Depends(can_report),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Update draft content. Omitted fields are left unchanged."""
    service.edit(achievement_id, user, payload)
    return envelope("Achievement updated")


@router.post("/{achievement_id}/attachments")
def upload_attachment(
    achievement_id: str,
    file: UploadFile = File(...),
    user: CurrentUser = Depends(can_report),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Upload a proof file (PDF, JPEG or PNG)."""
    incoming = IncomingFile(
        filename=file.filename or "",
        content_type=file.content_type or "",
        size=file.size,
        stream=file.file,
    )
    detail = service.upload_attachment(achievement_id, user, incoming)
    return envelope("Attachment uploaded", detail.model_dump(mode="json"))


@router.post("/{achievement_id}/submit")
def submit_achievement(
    achievement_id: str,
    user: CurrentUser = Depends(can_report),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Submit a draft to the advisor."""
    reference = service.submit(achievement_id, user)
    return envelope("Achievement submitted to advisor", reference.model_dump(mode="json"))


@router.delete("/{achievement_id}")
def delete_achievement(
    achievement_id: str,
    user: CurrentUser = Depends(can_report),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Soft-delete a draft."""
    service.delete(achievement_id, user)
    return envelope("Achievement deleted")


# =============================================================================
# Advisor Endpoints
# =============================================================================


@router.post("/{achievement_id}/verify")
def verify_achievement(
    achievement_id: str,
    payload: VerifyRequest,
    user: CurrentUser = Depends(can_review),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Approve a submission and award points."""
    reference = service.verify(achievement_id, user, payload.points)
    return envelope("Achievement verified", reference.model_dump(mode="json"))


@router.post("/{achievement_id}/reject")
def reject_achievement(
    achievement_id: str,
    payload: RejectRequest,
    user: CurrentUser = Depends(can_review),
    service: AchievementWorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    """Reject a submission with a note."""
    reference = service.reject(achievement_id, user, payload.rejection_note)
    return envelope("Achievement rejected", reference.model_dump(mode="json"))
