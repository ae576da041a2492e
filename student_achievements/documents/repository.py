"""
Document store abstraction for achievement content.

v0: MongoDB via pymongo.

The workflow service only talks to ``AchievementDocumentRepository``; any
store that can insert, fetch, patch and delete a document by id can back it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError as SchemaError
from pymongo import ASCENDING
from pymongo.collection import Collection

from ..primitives import utc_now
from .models import AchievementDocument, AttachmentPointer


class DocumentDecodeError(ValueError):
    """A stored document does not match the achievement schema."""


class AchievementDocumentRepository(ABC):
    """Abstract base class for the achievement document store."""

    @abstractmethod
    def insert(self, document: AchievementDocument) -> str:
        """Insert a new document and return its generated id."""
        pass

    @abstractmethod
    def get(self, document_id: str) -> Optional[AchievementDocument]:
        """Fetch one document, or None if absent."""
        pass

    @abstractmethod
    def get_many(self, document_ids: Iterable[str]) -> Dict[str, AchievementDocument]:
        """Batch-fetch documents, keyed by id. Unknown ids are omitted."""
        pass

    @abstractmethod
    def update_content(self, document_id: str, changes: Dict[str, Any]) -> bool:
        """Apply a partial content update. Returns False if nothing matched."""
        pass

    @abstractmethod
    def add_attachment(self, document_id: str, attachment: AttachmentPointer) -> bool:
        """Append an attachment pointer. Returns False if nothing matched."""
        pass

    @abstractmethod
    def set_points(self, document_id: str, points: int) -> bool:
        """Set awarded points. Returns False if nothing matched."""
        pass

    @abstractmethod
    def delete(self, document_id: str) -> bool:
        """Remove a document. Returns False if nothing matched."""
        pass

    def ensure_indexes(self) -> None:
        """Create any indexes the backing store needs."""
        return None


def _object_id(document_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


def _to_mongo(document: AchievementDocument) -> Dict[str, Any]:
    data = document.model_dump(exclude={"id"})
    data["attachments"] = [a.model_dump() for a in document.attachments]
    return data


def _from_mongo(raw: Dict[str, Any]) -> AchievementDocument:
    data = dict(raw)
    data["id"] = str(data.pop("_id"))
    # Documents written by older clients may carry nulls instead of empty values
    data["details"] = data.get("details") or {}
    data["tags"] = data.get("tags") or []
    data["attachments"] = data.get("attachments") or []
    try:
        return AchievementDocument.model_validate(data)
    except SchemaError as exc:
        raise DocumentDecodeError(f"Malformed achievement document {data['id']}: {exc}") from exc


class MongoAchievementDocumentRepository(AchievementDocumentRepository):
    """MongoDB-backed document store.

    Structure (collection ``achievements``):
        {_id: ObjectId, student_id, achievement_type, title, description,
         details: {...}, tags: [...], attachments: [{file_name, file_url,
         file_type, uploaded_at}], points, created_at, updated_at}
    """

    def __init__(self, collection: Collection):
        self.collection = collection

    def insert(self, document: AchievementDocument) -> str:
        result = self.collection.insert_one(_to_mongo(document))
        return str(result.inserted_id)

    def get(self, document_id: str) -> Optional[AchievementDocument]:
        oid = _object_id(document_id)
        if oid is None:
            return None
        raw = self.collection.find_one({"_id": oid})
        return _from_mongo(raw) if raw else None

    def get_many(self, document_ids: Iterable[str]) -> Dict[str, AchievementDocument]:
        oids: List[ObjectId] = [
            oid for oid in (_object_id(d) for d in document_ids) if oid is not None
        ]
        if not oids:
            return {}
        documents = (_from_mongo(raw) for raw in self.collection.find({"_id": {"$in": oids}}))
        return {doc.id: doc for doc in documents}

    def _update(self, document_id: str, update: Dict[str, Any]) -> bool:
        oid = _object_id(document_id)
        if oid is None:
            return False
        result = self.collection.update_one({"_id": oid}, update)
        return result.matched_count > 0

    def update_content(self, document_id: str, changes: Dict[str, Any]) -> bool:
        fields = dict(changes)
        fields["updated_at"] = utc_now()
        return self._update(document_id, {"$set": fields})

    def add_attachment(self, document_id: str, attachment: AttachmentPointer) -> bool:
        return self._update(
            document_id,
            {
                "$push": {"attachments": attachment.model_dump()},
                "$set": {"updated_at": utc_now()},
            },
        )

    def set_points(self, document_id: str, points: int) -> bool:
        return self._update(
            document_id, {"$set": {"points": points, "updated_at": utc_now()}}
        )

    def delete(self, document_id: str) -> bool:
        oid = _object_id(document_id)
        if oid is None:
            return False
        return self.collection.delete_one({"_id": oid}).deleted_count > 0

    def ensure_indexes(self) -> None:
        self.collection.create_index([("student_id", ASCENDING)])
        self.collection.create_index([("created_at", ASCENDING)])
