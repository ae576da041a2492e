"""
Audit Log Service.

Provides a clean interface for recording audit events from the achievement
workflow. Every state-changing workflow operation goes through this service.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..primitives import generate_ulid, utc_now
from .audit_models import AuditLogModel

ACHIEVEMENT_ENTITY = "Achievement"


class AuditService:
    """Service for managing audit log entries.

    Usage:
        audit = AuditService(db_session)
        audit.log_create("Achievement", ref.id, ref.to_dict(), actor_kind="student", actor_id="user-1")
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_kind: str,
        actor_id: str,
        note: Optional[str],
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=generate_ulid(),
            ts=utc_now(),
            actor_kind=actor_kind,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            before=before,
            after=after,
            note=note,
        )

        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def log_create(
        self,
        entity_kind: str,
        entity_id: str,
        after: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the creation of an entity.

        Args:
            entity_kind: Type of entity (e.g., "Achievement")
            entity_id: ID of the entity
            after: State of the entity after creation
            actor_kind: Type of actor ("student", "advisor", "admin", "system")
            actor_id: ID of the actor
            note: Optional human-readable note

        Returns:
            The created AuditLogModel
        """
        return self._record(
            "created", entity_kind, entity_id, None, after, actor_kind, actor_id, note
        )

    def log_update(
        self,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a content update to an entity."""
        return self._record(
            "updated", entity_kind, entity_id, before, after, actor_kind, actor_id, note
        )

    def log_status_change(
        self,
        entity_kind: str,
        entity_id: str,
        old_status: str,
        new_status: str,
        actor_kind: str = "system",
        actor_id: str = "unknown",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a status change on an entity.

        The note defaults to ``"Status changed: <old> -> <new>"``.
        """
        return self._record(
            "status_changed",
            entity_kind,
            entity_id,
            {"status": old_status},
            {"status": new_status},
            actor_kind,
            actor_id,
            note or f"Status changed: {old_status} -> {new_status}",
        )

    def log_attachment(
        self,
        entity_kind: str,
        entity_id: str,
        attachment: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
    ) -> AuditLogModel:
        """Log an attachment appended to an entity."""
        return self._record(
            "attachment_added",
            entity_kind,
            entity_id,
            None,
            attachment,
            actor_kind,
            actor_id,
            f"Attached {attachment.get('file_name')}",
        )

    # Query methods

    def query_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get audit history for a specific entity, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def query_by_actor(
        self,
        actor_kind: str,
        actor_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get all audit entries by a specific actor, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.actor_kind == actor_kind,
                AuditLogModel.actor_id == actor_id,
            )
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def query_recent(
        self,
        limit: int = 50,
        entity_kind: Optional[str] = None,
    ) -> List[AuditLogModel]:
        """Get most recent audit entries."""
        query = self.db.query(AuditLogModel)

        if entity_kind:
            query = query.filter(AuditLogModel.entity_kind == entity_kind)

        return query.order_by(desc(AuditLogModel.ts)).limit(limit).all()
