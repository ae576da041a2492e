"""
Relational access to achievement references.

Status changes are single conditional UPDATEs (``WHERE id = :id AND status =
:expected``). The caller learns from the return value whether its expected
status still held when the write landed, so two racing transitions of the
same reference can never both succeed.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload

from ..db.models import (
    AchievementReferenceModel,
    ReconciliationEntryModel,
    StudentModel,
)
from ..primitives import generate_ulid, utc_now
from .enums import AchievementStatus, ReconciliationAction


class ReferenceStore:
    """Queries and guarded writes on ``achievement_references``."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def create(self, student_id: str, document_id: str) -> AchievementReferenceModel:
        """Insert a draft reference pointing at ``document_id``."""
        now = utc_now()
        reference = AchievementReferenceModel(
            id=generate_ulid(),
            student_id=student_id,
            document_id=document_id,
            status=AchievementStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(reference)
        self._commit()
        self.db.refresh(reference)
        return reference

    def get(self, reference_id: str) -> Optional[AchievementReferenceModel]:
        """Get a reference by ID."""
        return (
            self.db.query(AchievementReferenceModel)
            .filter(AchievementReferenceModel.id == reference_id)
            .first()
        )

    def get_with_student(self, reference_id: str) -> Optional[AchievementReferenceModel]:
        """Get a reference with its owning student eagerly loaded."""
        return (
            self.db.query(AchievementReferenceModel)
            .options(joinedload(AchievementReferenceModel.student))
            .filter(AchievementReferenceModel.id == reference_id)
            .first()
        )

    def transition(
        self,
        reference_id: str,
        source: AchievementStatus,
        target: AchievementStatus,
        **fields: Any,
    ) -> bool:
        """Move a reference from ``source`` to ``target`` if it is still in ``source``.

        Extra keyword arguments are written in the same UPDATE.

        Returns:
            True if exactly this call performed the transition
        """
        values: Dict[str, Any] = {"status": target.value, "updated_at": utc_now()}
        values.update(fields)
        count = (
            self.db.query(AchievementReferenceModel)
            .filter(
                AchievementReferenceModel.id == reference_id,
                AchievementReferenceModel.status == source.value,
            )
            .update(values, synchronize_session=False)
        )
        self._commit()
        return count == 1

    def list_page(
        self,
        offset: int,
        limit: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        student_id: Optional[str] = None,
        advisor_id: Optional[str] = None,
    ) -> Tuple[List[AchievementReferenceModel], int]:
        """List non-deleted references, newest first, with their students.

        Returns:
            The requested page of references and the total number of matches
        """
        query = (
            self.db.query(AchievementReferenceModel)
            .join(StudentModel, AchievementReferenceModel.student_id == StudentModel.id)
            .filter(AchievementReferenceModel.status != AchievementStatus.DELETED.value)
        )

        if status:
            query = query.filter(AchievementReferenceModel.status == status)
        if student_id:
            query = query.filter(AchievementReferenceModel.student_id == student_id)
        if advisor_id:
            query = query.filter(StudentModel.advisor_id == advisor_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    StudentModel.full_name.ilike(pattern),
                    StudentModel.student_number.ilike(pattern),
                )
            )

        total = query.count()
        rows = (
            query.options(contains_eager(AchievementReferenceModel.student))
            .order_by(
                desc(AchievementReferenceModel.created_at),
                desc(AchievementReferenceModel.id),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    # Reconciliation queue

    def record_reconciliation(
        self,
        action: ReconciliationAction,
        achievement_id: Optional[str] = None,
        document_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> ReconciliationEntryModel:
        """Queue a repair that could not be completed inline."""
        entry = ReconciliationEntryModel(
            id=generate_ulid(),
            action=action.value,
            achievement_id=achievement_id,
            document_id=document_id,
            payload=payload or {},
            error=error,
            attempts=0,
            created_at=utc_now(),
        )
        self.db.add(entry)
        self._commit()
        return entry

    def pending_reconciliations(self, limit: int = 100) -> List[ReconciliationEntryModel]:
        """Get unresolved reconciliation entries, oldest first."""
        return (
            self.db.query(ReconciliationEntryModel)
            .filter(ReconciliationEntryModel.resolved_at.is_(None))
            .order_by(ReconciliationEntryModel.created_at, ReconciliationEntryModel.id)
            .limit(limit)
            .all()
        )

    def mark_reconciled(self, entry: ReconciliationEntryModel) -> None:
        entry.attempts = (entry.attempts or 0) + 1
        entry.resolved_at = utc_now()
        entry.error = None
        self._commit()

    def mark_reconcile_failed(self, entry: ReconciliationEntryModel, error: str) -> None:
        entry.attempts = (entry.attempts or 0) + 1
        entry.error = error
        self._commit()
