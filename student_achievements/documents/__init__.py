"""
Document store package: achievement content (title, description, details,
tags, attachments, points).
"""

from .base import close_mongo_client, get_document_repository, get_mongo_client
from .models import AchievementDocument, AttachmentPointer, DocumentContentUpdate
from .repository import (
    AchievementDocumentRepository,
    DocumentDecodeError,
    MongoAchievementDocumentRepository,
)

__all__ = [
    "AchievementDocument",
    "AchievementDocumentRepository",
    "AttachmentPointer",
    "DocumentDecodeError",
    "DocumentContentUpdate",
    "MongoAchievementDocumentRepository",
    "close_mongo_client",
    "get_document_repository",
    "get_mongo_client",
]
