"""
Attachment upload: validation, naming and persistence of proof files.

The uploader only deals with blobs. Appending the returned pointer to the
achievement document, and undoing the blob write when that append fails, is
the workflow service's job.
"""
from __future__ import annotations

import os
import re
import secrets
import time
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

import structlog

from ..achievements.errors import ValidationError
from ..config import get_settings
from ..documents.models import AttachmentPointer
from ..primitives import utc_now
from .storage import AttachmentStore, create_attachment_store

logger = structlog.get_logger()

_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass
class IncomingFile:
    """A file received from a client."""

    filename: str
    content_type: str
    size: Optional[int]
    stream: BinaryIO

    def measured_size(self) -> int:
        """Declared size, or the stream length when the client sent none."""
        if self.size is not None:
            return self.size
        position = self.stream.tell()
        self.stream.seek(0, os.SEEK_END)
        size = self.stream.tell()
        self.stream.seek(position)
        return size


class AttachmentUploader:
    """Validates and stores proof files, producing attachment pointers."""

    def __init__(
        self,
        store: AttachmentStore,
        url_prefix: str,
        max_bytes: int,
        allowed_types: List[str],
    ):
        self.store = store
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types

    def validate(self, incoming: IncomingFile) -> None:
        """Raise ValidationError if the file breaks the size or type limits."""
        if incoming.measured_size() > self.max_bytes:
            max_mb = self.max_bytes // (1024 * 1024)
            raise ValidationError(f"File is too large. Maximum size is {max_mb}MB")

        if incoming.content_type not in self.allowed_types:
            raise ValidationError(
                "Unsupported file type. Allowed types: " + ", ".join(self.allowed_types)
            )

    @staticmethod
    def generate_file_name(reference_id: str, original_name: str) -> str:
        """Build ``ACH-<reference id>-<unix ts>-<random><ext>``."""
        ext = os.path.splitext(original_name or "")[1].lower()
        if not _SAFE_EXTENSION.match(ext):
            ext = ""
        return f"ACH-{reference_id}-{int(time.time())}-{secrets.token_hex(4)}{ext}"

    def store_file(self, reference_id: str, incoming: IncomingFile) -> AttachmentPointer:
        """Persist the file and return its pointer.

        Raises:
            OSError: If the blob store cannot write the file
        """
        file_name = self.generate_file_name(reference_id, incoming.filename)
        written = self.store.save(file_name, incoming.stream)
        logger.info(
            "attachment_stored",
            achievement_id=reference_id,
            file_name=file_name,
            bytes=written,
        )
        return AttachmentPointer(
            file_name=file_name,
            file_url=f"{self.url_prefix}/{file_name}",
            file_type=incoming.content_type,
            uploaded_at=utc_now(),
        )

    def remove(self, file_name: str) -> bool:
        """Delete a stored file.

        Raises:
            OSError: If the blob store cannot remove the file
        """
        return self.store.delete(file_name)


def get_attachment_uploader() -> AttachmentUploader:
    """Dependency to get an uploader configured from settings."""
    settings = get_settings()
    return AttachmentUploader(
        store=create_attachment_store(settings.upload_storage_uri),
        url_prefix=settings.upload_url_prefix,
        max_bytes=settings.max_upload_bytes,
        allowed_types=settings.allowed_upload_type_list(),
    )
