"""
Achievement workflow service.

Orchestrates every lifecycle operation across the two stores:

- the relational reference (``ReferenceStore``) owns identity, ownership and
  status, and every status change is a guarded compare-and-set
- the document (``AchievementDocumentRepository``) owns narrative content,
  attachments and points

There is no transaction spanning both stores. Each dual write is ordered so
that a failure can be undone (Create, Upload) or is left in a known state
(Verify), and any repair that cannot be made inline is queued in the
reconciliation table for the ``reconcile`` command.

All store exceptions are translated to ``DatabaseError`` here; nothing below
this layer reaches the transport.
"""

import math
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

import structlog
from bson.errors import InvalidDocument
from pymongo.errors import PyMongoError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..attachments.uploader import AttachmentUploader, IncomingFile
from ..config import Settings, get_settings
from ..db.audit_service import ACHIEVEMENT_ENTITY, AuditService
from ..db.models import AchievementReferenceModel, StudentModel
from ..documents.models import AchievementDocument, DocumentContentUpdate
from ..documents.repository import AchievementDocumentRepository, DocumentDecodeError
from ..primitives import utc_now
from .enums import AchievementStatus, Operation, ReconciliationAction, VisibilityScope
from .errors import AchievementError, DatabaseError, NotFoundError, ValidationError
from .identity import CurrentUser, IdentityResolver, LecturerInfo, StudentInfo
from .policy import Transition, ensure_capability, ensure_transition, visibility_for
from .references import ReferenceStore
from .schemas import (
    AchievementCreate,
    AchievementDetail,
    AchievementListItem,
    AchievementReferenceOut,
    MAX_POINTS,
    PaginatedAchievements,
    StudentSummary,
)

logger = structlog.get_logger()

STORE_ERRORS = (SQLAlchemyError, PyMongoError, OSError, DocumentDecodeError)
# Raised by the BSON encoder for values the document store cannot hold
ENCODING_ERRORS = (OverflowError, InvalidDocument)

NOT_FOUND_MESSAGE = "Achievement not found"
NOT_OWNER_MESSAGE = "Access denied, this is not your achievement"
NOT_ADVISEE_MESSAGE = "Access denied, this student is not your advisee"


class AchievementWorkflowService:
    """Lifecycle operations on achievements.

    Usage:
        service = AchievementWorkflowService(db, documents, uploader)
        ref = service.create(user, AchievementCreate(achievement_type="Nasional", title="..."))
        service.submit(ref.id, user)
    """

    def __init__(
        self,
        db: Session,
        documents: AchievementDocumentRepository,
        uploader: Optional[AttachmentUploader] = None,
        audit: Optional[AuditService] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.documents = documents
        self.uploader = uploader
        self.references = ReferenceStore(db)
        self.identity = IdentityResolver(db)
        self.audit = audit or AuditService(db)
        self.settings = settings or get_settings()

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _store_guard(self, event: str, **context: Any) -> Iterator[None]:
        """Translate store exceptions into DatabaseError.

        Content the document store cannot encode is a ValidationError instead.
        """
        try:
            yield
        except AchievementError:
            raise
        except ENCODING_ERRORS as exc:
            self._rollback()
            logger.warning(event, error=str(exc), error_type=type(exc).__name__, **context)
            raise ValidationError("Achievement content cannot be stored") from exc
        except STORE_ERRORS as exc:
            self._rollback()
            logger.error(event, error=str(exc), error_type=type(exc).__name__, **context)
            raise DatabaseError() from exc

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError as exc:
            logger.error("session_rollback_failed", error=str(exc))

    def _audit(self, method: str, *args: Any, **kwargs: Any) -> None:
        """Write an audit entry. Failures are logged, never raised."""
        try:
            getattr(self.audit, method)(ACHIEVEMENT_ENTITY, *args, **kwargs)
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error("audit_write_failed", audit_method=method, error=str(exc))

    def _queue_repair(
        self,
        action: ReconciliationAction,
        achievement_id: Optional[str],
        document_id: Optional[str],
        payload: Dict[str, Any],
        error: str,
    ) -> None:
        """Record a repair for the reconcile command."""
        try:
            self.references.record_reconciliation(
                action,
                achievement_id=achievement_id,
                document_id=document_id,
                payload=payload,
                error=error,
            )
        except SQLAlchemyError as exc:
            self._rollback()
            logger.critical(
                "reconciliation_record_failed",
                action=action.value,
                achievement_id=achievement_id,
                document_id=document_id,
                payload=payload,
                error=str(exc),
            )
            return

        logger.error(
            "reconciliation_queued",
            action=action.value,
            achievement_id=achievement_id,
            document_id=document_id,
            error=error,
        )

    def _get_reference(
        self, reference_id: str, with_student: bool = False
    ) -> AchievementReferenceModel:
        with self._store_guard("achievement_reference_read_failed", achievement_id=reference_id):
            if with_student:
                reference = self.references.get_with_student(reference_id)
            else:
                reference = self.references.get(reference_id)
        if reference is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return reference

    def _resolve_student(self, user: CurrentUser) -> Optional[StudentInfo]:
        with self._store_guard("identity_lookup_failed", user_id=user.user_id):
            return self.identity.get_student_by_user_id(user.user_id)

    def _resolve_lecturer(self, user: CurrentUser) -> Optional[LecturerInfo]:
        with self._store_guard("identity_lookup_failed", user_id=user.user_id):
            return self.identity.get_lecturer_by_user_id(user.user_id)

    def _load_owned(
        self, reference_id: str, user: CurrentUser, operation: Operation
    ) -> Tuple[AchievementReferenceModel, Transition]:
        """Load a reference the caller owns and check the operation is legal now."""
        reference = self._get_reference(reference_id)
        ensure_capability(user.role, operation)

        student = self._resolve_student(user)
        if student is None or student.id != reference.student_id:
            raise ValidationError(NOT_OWNER_MESSAGE)

        return reference, ensure_transition(operation, reference.status)

    def _load_reviewable(
        self, reference_id: str, user: CurrentUser, operation: Operation
    ) -> Tuple[AchievementReferenceModel, LecturerInfo, Transition]:
        """Load a reference the caller advises and check the operation is legal now."""
        reference = self._get_reference(reference_id, with_student=True)
        ensure_capability(user.role, operation)

        lecturer = self._resolve_lecturer(user)
        if lecturer is None:
            raise ValidationError("Access denied, user is not a lecturer")

        advisor_id = reference.student.advisor_id if reference.student else None
        if advisor_id is None or advisor_id != lecturer.id:
            raise ValidationError(NOT_ADVISEE_MESSAGE)

        return reference, lecturer, ensure_transition(operation, reference.status)

    def _transition(
        self, reference_id: str, transition: Transition, **fields: Any
    ) -> None:
        """Perform a guarded transition, failing if the status moved on."""
        with self._store_guard(
            "achievement_transition_failed",
            achievement_id=reference_id,
            target=transition.target.value,
        ):
            moved = self.references.transition(
                reference_id, transition.source, transition.target, **fields
            )
        if not moved:
            self._raise_stale(reference_id, transition)

    def _raise_stale(self, reference_id: str, transition: Transition) -> None:
        """Explain why a guarded write matched no row."""
        reference = self._get_reference(reference_id)
        logger.info(
            "achievement_transition_lost",
            achievement_id=reference_id,
            expected=transition.source.value,
            actual=reference.status,
        )
        raise ValidationError(transition.denied_message)

    def _ensure_visible(self, user: CurrentUser, student: StudentModel) -> None:
        scope = visibility_for(user.role)
        if scope == VisibilityScope.OWN:
            own = self._resolve_student(user)
            if own is None or own.id != student.id:
                raise ValidationError(NOT_OWNER_MESSAGE)
        elif scope == VisibilityScope.ADVISEES:
            lecturer = self._resolve_lecturer(user)
            if lecturer is None or student.advisor_id is None or student.advisor_id != lecturer.id:
                raise ValidationError(NOT_ADVISEE_MESSAGE)

    def _normalize_paging(self, page: int, limit: int) -> Tuple[int, int]:
        if page < 1:
            page = 1
        if limit < 1 or limit > self.settings.max_page_size:
            limit = self.settings.default_page_size
        return page, limit

    def _page(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        student_id: Optional[str] = None,
        advisor_id: Optional[str] = None,
    ) -> PaginatedAchievements:
        """Page over references, then merge content from one batch document fetch."""
        with self._store_guard("achievement_list_failed"):
            rows, total = self.references.list_page(
                offset=(page - 1) * limit,
                limit=limit,
                status=status,
                search=search,
                student_id=student_id,
                advisor_id=advisor_id,
            )
            documents = self.documents.get_many([row.document_id for row in rows])

        items = []
        for row in rows:
            document = documents.get(row.document_id)
            if document is None:
                logger.warning(
                    "achievement_document_missing_in_listing",
                    achievement_id=row.id,
                    document_id=row.document_id,
                )
            items.append(
                AchievementListItem(
                    id=row.id,
                    student_id=row.student_id,
                    student_name=row.student.full_name,
                    student_number=row.student.student_number,
                    achievement_type=document.achievement_type if document else "",
                    title=document.title if document else "",
                    status=row.status,
                    points=document.points if document else 0,
                    created_at=row.created_at,
                )
            )

        return PaginatedAchievements(
            data=items,
            total=total,
            page=page,
            page_size=limit,
            total_pages=math.ceil(total / limit),
        )

    # =========================================================================
    # Write operations
    # =========================================================================

    def create(self, user: CurrentUser, payload: AchievementCreate) -> AchievementReferenceOut:
        """Create a draft achievement: document first, then the reference.

        If the reference cannot be written the document is deleted again; if
        that also fails the orphan is queued for reconciliation.
        """
        ensure_capability(user.role, Operation.CREATE)
        student = self._resolve_student(user)
        if student is None:
            raise ValidationError("Only students may report achievements")

        now = utc_now()
        document = AchievementDocument(
            student_id=student.id,
            achievement_type=payload.achievement_type,
            title=payload.title,
            description=payload.description,
            details=payload.details,
            tags=payload.tags,
            attachments=[],
            points=0,
            created_at=now,
            updated_at=now,
        )
        with self._store_guard("achievement_document_insert_failed", user_id=user.user_id):
            document_id = self.documents.insert(document)

        try:
            reference = self.references.create(student.id, document_id)
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error(
                "achievement_reference_insert_failed",
                user_id=user.user_id,
                document_id=document_id,
                error=str(exc),
            )
            self._undo_document_insert(document_id, student.id)
            raise DatabaseError() from exc

        result = AchievementReferenceOut.model_validate(reference)
        logger.info(
            "achievement_created",
            achievement_id=result.id,
            document_id=document_id,
            user_id=user.user_id,
        )
        self._audit(
            "log_create",
            result.id,
            {**result.model_dump(mode="json"), "title": payload.title},
            actor_kind=user.role.actor_kind,
            actor_id=user.user_id,
        )
        return result

    def _undo_document_insert(self, document_id: str, student_id: str) -> None:
        try:
            self.documents.delete(document_id)
        except PyMongoError as exc:
            logger.error(
                "achievement_compensation_failed",
                document_id=document_id,
                error=str(exc),
            )
            self._queue_repair(
                ReconciliationAction.DELETE_DOCUMENT,
                achievement_id=None,
                document_id=document_id,
                payload={"student_id": student_id},
                error=str(exc),
            )
            return
        logger.info("achievement_compensated", document_id=document_id)

    def edit(
        self, reference_id: str, user: CurrentUser, update: DocumentContentUpdate
    ) -> None:
        """Apply a partial content update to a draft the caller owns.

        The audit entry records the changed fields before and after.
        """
        reference, transition = self._load_owned(reference_id, user, Operation.EDIT)
        changes = update.changes()

        before: Dict[str, Any] = {}
        if changes:
            with self._store_guard("achievement_document_read_failed", achievement_id=reference.id):
                current = self.documents.get(reference.document_id)
            if current is None:
                self._document_missing(reference)
            before = current.model_dump(mode="json", include=set(changes))

        self._transition(reference.id, transition)
        if changes:
            with self._store_guard("achievement_document_update_failed", achievement_id=reference.id):
                matched = self.documents.update_content(reference.document_id, changes)
            if not matched:
                self._document_missing(reference)

        logger.info("achievement_edited", achievement_id=reference.id, fields=sorted(changes))
        self._audit(
            "log_update",
            reference.id,
            before,
            changes,
            actor_kind=user.role.actor_kind,
            actor_id=user.user_id,
        )

    def upload_attachment(
        self, reference_id: str, user: CurrentUser, incoming: IncomingFile
    ) -> AchievementDetail:
        """Store a proof file and append its pointer to the document.

        A failed append removes the stored file again; a failed removal is
        queued for reconciliation.
        """
        if self.uploader is None:
            raise RuntimeError("AchievementWorkflowService was created without an uploader")

        self.uploader.validate(incoming)
        reference, transition = self._load_owned(
            reference_id, user, Operation.UPLOAD_ATTACHMENT
        )
        self._transition(reference.id, transition)

        with self._store_guard("attachment_store_failed", achievement_id=reference.id):
            pointer = self.uploader.store_file(reference.id, incoming)

        try:
            appended = self.documents.add_attachment(reference.document_id, pointer)
        except PyMongoError as exc:
            logger.error(
                "attachment_append_failed",
                achievement_id=reference.id,
                file_name=pointer.file_name,
                error=str(exc),
            )
            self._undo_file_store(reference.id, pointer.file_name, str(exc))
            raise DatabaseError() from exc

        if not appended:
            self._undo_file_store(reference.id, pointer.file_name, "document not found")
            self._document_missing(reference)

        logger.info(
            "attachment_added", achievement_id=reference.id, file_name=pointer.file_name
        )
        self._audit(
            "log_attachment",
            reference.id,
            pointer.model_dump(mode="json"),
            actor_kind=user.role.actor_kind,
            actor_id=user.user_id,
        )
        return self.get_detail(reference.id, user)

    def _undo_file_store(self, reference_id: str, file_name: str, cause: str) -> None:
        try:
            self.uploader.remove(file_name)
        except OSError as exc:
            logger.error(
                "attachment_compensation_failed",
                achievement_id=reference_id,
                file_name=file_name,
                error=str(exc),
            )
            self._queue_repair(
                ReconciliationAction.DELETE_FILE,
                achievement_id=reference_id,
                document_id=None,
                payload={"file_name": file_name, "cause": cause},
                error=str(exc),
            )
            return
        logger.info("attachment_compensated", achievement_id=reference_id, file_name=file_name)

    def submit(self, reference_id: str, user: CurrentUser) -> AchievementReferenceOut:
        """Hand a draft over to the advisor (draft -> submitted)."""
        reference, transition = self._load_owned(reference_id, user, Operation.SUBMIT)
        self._transition(reference.id, transition, submitted_at=utc_now())
        return self._after_transition(reference.id, transition, user)

    def delete(self, reference_id: str, user: CurrentUser) -> AchievementReferenceOut:
        """Soft-delete a draft (draft -> deleted). The document is kept."""
        reference, transition = self._load_owned(reference_id, user, Operation.DELETE)
        self._transition(reference.id, transition)
        return self._after_transition(reference.id, transition, user)

    def verify(
        self, reference_id: str, user: CurrentUser, points: int
    ) -> AchievementReferenceOut:
        """Approve a submission and award points (submitted -> verified).

        The reference moves first. If the points cannot be written afterwards
        the achievement stays verified, the write is queued for
        reconciliation and DatabaseError is raised.
        """
        if points is None or isinstance(points, bool) or not 1 <= points <= MAX_POINTS:
            raise ValidationError("Points must be a positive integer")

        reference, lecturer, transition = self._load_reviewable(
            reference_id, user, Operation.VERIFY
        )
        self._transition(
            reference.id, transition, verified_at=utc_now(), verified_by=lecturer.id
        )
        result = self._after_transition(
            reference.id, transition, user, note=f"Verified with {points} points"
        )

        try:
            matched = self.documents.set_points(reference.document_id, points)
            error = None if matched else "document not found"
        except (PyMongoError, *ENCODING_ERRORS) as exc:
            matched, error = False, str(exc)

        if not matched:
            logger.error(
                "achievement_points_write_failed",
                achievement_id=reference.id,
                document_id=reference.document_id,
                points=points,
                error=error,
            )
            self._queue_repair(
                ReconciliationAction.APPLY_POINTS,
                achievement_id=reference.id,
                document_id=reference.document_id,
                payload={"points": points},
                error=error,
            )
            raise DatabaseError()

        return result

    def reject(
        self, reference_id: str, user: CurrentUser, rejection_note: str
    ) -> AchievementReferenceOut:
        """Decline a submission with a note (submitted -> rejected). Reference only."""
        note = (rejection_note or "").strip()
        minimum = self.settings.min_rejection_note_length
        if len(note) < minimum:
            raise ValidationError(f"Rejection note must be at least {minimum} characters")

        reference, lecturer, transition = self._load_reviewable(
            reference_id, user, Operation.REJECT
        )
        self._transition(
            reference.id,
            transition,
            rejection_note=note,
            verified_at=utc_now(),
            verified_by=lecturer.id,
        )
        return self._after_transition(reference.id, transition, user, note=note)

    def _after_transition(
        self,
        reference_id: str,
        transition: Transition,
        user: CurrentUser,
        note: Optional[str] = None,
    ) -> AchievementReferenceOut:
        result = AchievementReferenceOut.model_validate(self._get_reference(reference_id))
        logger.info(
            "achievement_status_changed",
            achievement_id=reference_id,
            old_status=transition.source.value,
            new_status=transition.target.value,
            user_id=user.user_id,
        )
        self._audit(
            "log_status_change",
            reference_id,
            transition.source.value,
            transition.target.value,
            actor_kind=user.role.actor_kind,
            actor_id=user.user_id,
            note=note,
        )
        return result

    # =========================================================================
    # Read operations
    # =========================================================================

    def _document_missing(self, reference: AchievementReferenceModel) -> None:
        logger.error(
            "achievement_invariant_violation",
            reason="document missing for reference",
            achievement_id=reference.id,
            document_id=reference.document_id,
        )
        raise NotFoundError("Achievement content not found")

    def get_detail(self, reference_id: str, user: CurrentUser) -> AchievementDetail:
        """Reference, owning student and document merged into one view.

        Deleted achievements stay readable.
        """
        reference = self._get_reference(reference_id, with_student=True)
        ensure_capability(user.role, Operation.VIEW)
        self._ensure_visible(user, reference.student)

        with self._store_guard("achievement_document_read_failed", achievement_id=reference.id):
            document = self.documents.get(reference.document_id)
        if document is None:
            self._document_missing(reference)

        return AchievementDetail(
            id=reference.id,
            student=StudentSummary.model_validate(reference.student),
            achievement_type=document.achievement_type,
            title=document.title,
            description=document.description,
            details=document.details,
            tags=document.tags,
            attachments=document.attachments,
            points=document.points,
            status=reference.status,
            rejection_note=reference.rejection_note,
            verified_by=reference.verified_by,
            created_at=reference.created_at,
            updated_at=reference.updated_at,
            submitted_at=reference.submitted_at,
            verified_at=reference.verified_at,
        )

    def get_all(
        self,
        user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> PaginatedAchievements:
        """List achievements visible to the caller."""
        ensure_capability(user.role, Operation.LIST)
        page, limit = self._normalize_paging(page, limit)

        student_id = advisor_id = None
        scope = visibility_for(user.role)
        if scope == VisibilityScope.OWN:
            student = self._resolve_student(user)
            if student is None:
                raise ValidationError("Student profile not found")
            student_id = student.id
        elif scope == VisibilityScope.ADVISEES:
            lecturer = self._resolve_lecturer(user)
            if lecturer is None:
                raise ValidationError("Lecturer profile not found")
            advisor_id = lecturer.id

        return self._page(
            page,
            limit,
            status=status,
            search=search,
            student_id=student_id,
            advisor_id=advisor_id,
        )

    def get_by_student(
        self,
        student_id: str,
        user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> PaginatedAchievements:
        """List one student's achievements, if the caller may see that student."""
        ensure_capability(user.role, Operation.LIST)
        page, limit = self._normalize_paging(page, limit)

        with self._store_guard("identity_lookup_failed", student_id=student_id):
            target = self.identity.get_student(student_id)
        if target is None:
            raise NotFoundError("Student not found")

        scope = visibility_for(user.role)
        if scope == VisibilityScope.OWN:
            own = self._resolve_student(user)
            if own is None or own.id != target.id:
                raise ValidationError("Access denied, you may only view your own achievements")
        elif scope == VisibilityScope.ADVISEES:
            lecturer = self._resolve_lecturer(user)
            if lecturer is None or target.advisor_id is None or target.advisor_id != lecturer.id:
                raise ValidationError(NOT_ADVISEE_MESSAGE)

        return self._page(page, limit, status=status, student_id=target.id)
