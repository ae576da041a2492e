"""
Replay of queued cross-store repairs.

Entries are written by the workflow service when an inline compensation or
follow-up write fails:

- delete_document: a document whose reference was never written
- delete_file: a stored attachment that never made it into its document
- apply_points: points of a verified achievement that never reached its document

Each entry is attempted once per run; failures stay pending with the error
recorded.
"""

from dataclasses import dataclass, field
from typing import List

import structlog
from pymongo.errors import PyMongoError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..attachments.uploader import AttachmentUploader
from ..db.models import AchievementReferenceModel, ReconciliationEntryModel
from ..documents.repository import AchievementDocumentRepository
from .enums import AchievementStatus, ReconciliationAction
from .references import ReferenceStore

logger = structlog.get_logger()


class ReconcileSkipped(Exception):
    """The entry no longer applies and is closed without a repair."""


@dataclass
class ReconcileReport:
    resolved: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.resolved) + len(self.skipped) + len(self.failed)


class ReconciliationService:
    """Replays pending entries of the ``achievement_reconciliation`` table."""

    def __init__(
        self,
        db: Session,
        documents: AchievementDocumentRepository,
        uploader: AttachmentUploader,
    ):
        self.db = db
        self.references = ReferenceStore(db)
        self.documents = documents
        self.uploader = uploader

    def replay(self, limit: int = 100) -> ReconcileReport:
        report = ReconcileReport()

        for entry in self.references.pending_reconciliations(limit=limit):
            try:
                self._apply(entry)
            except ReconcileSkipped as exc:
                logger.info("reconciliation_skipped", entry_id=entry.id, reason=str(exc))
                self.references.mark_reconciled(entry)
                report.skipped.append(entry.id)
            except (PyMongoError, OSError, LookupError, SQLAlchemyError) as exc:
                self.db.rollback()
                logger.error(
                    "reconciliation_failed",
                    entry_id=entry.id,
                    action=entry.action,
                    error=str(exc),
                )
                self.references.mark_reconcile_failed(entry, str(exc))
                report.failed.append(entry.id)
            else:
                logger.info("reconciliation_resolved", entry_id=entry.id, action=entry.action)
                self.references.mark_reconciled(entry)
                report.resolved.append(entry.id)

        return report

    def _apply(self, entry: ReconciliationEntryModel) -> None:
        action = ReconciliationAction(entry.action)

        if action == ReconciliationAction.DELETE_DOCUMENT:
            owner = (
                self.db.query(AchievementReferenceModel)
                .filter(AchievementReferenceModel.document_id == entry.document_id)
                .first()
            )
            if owner is not None:
                raise ReconcileSkipped(f"document is referenced by {owner.id}")
            # Already gone counts as repaired
            self.documents.delete(entry.document_id)

        elif action == ReconciliationAction.DELETE_FILE:
            file_name = (entry.payload or {}).get("file_name")
            if not file_name:
                raise ReconcileSkipped("entry carries no file name")
            self.uploader.remove(file_name)

        elif action == ReconciliationAction.APPLY_POINTS:
            reference = self.references.get(entry.achievement_id)
            if reference is None or reference.status != AchievementStatus.VERIFIED.value:
                raise ReconcileSkipped("achievement is no longer verified")
            points = int((entry.payload or {}).get("points", 0))
            if not self.documents.set_points(reference.document_id, points):
                raise LookupError(f"document {reference.document_id} not found")
