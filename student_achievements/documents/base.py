"""Document store connection setup."""

from typing import Optional

from pymongo import MongoClient

from ..config import get_settings
from .repository import AchievementDocumentRepository, MongoAchievementDocumentRepository

_client: Optional[MongoClient] = None


def get_mongo_client() -> MongoClient:
    """
    Create and cache the MongoDB client.

    Lazy so that the connection URI is read at runtime; pymongo connects in
    the background and only fails on first use.
    """
    global _client
    if _client is not None:
        return _client

    settings = get_settings()
    _client = MongoClient(
        settings.mongodb_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
    )
    return _client


def close_mongo_client() -> None:
    """Close the cached client, if any."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def get_document_repository() -> AchievementDocumentRepository:
    """Dependency to get the achievement document repository."""
    settings = get_settings()
    collection = get_mongo_client()[settings.mongodb_db_name][settings.mongodb_collection]
    return MongoAchievementDocumentRepository(collection)
