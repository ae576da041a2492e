"""
Attachment blob storage abstraction.

v0: file:// support (local filesystem)
v1: s3:// support (add an S3 handler without changing the uploader)

Storage is addressed by URI, not by a boolean switch.
"""
from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urlparse


class AttachmentStore(ABC):
    """Abstract base class for attachment blob storage."""

    @abstractmethod
    def save(self, file_name: str, stream: BinaryIO) -> int:
        """Persist the stream under ``file_name``. Returns bytes written."""
        pass

    @abstractmethod
    def delete(self, file_name: str) -> bool:
        """Remove a stored file. Returns False if it did not exist."""
        pass

    @abstractmethod
    def exists(self, file_name: str) -> bool:
        """Return True if the file is stored."""
        pass

    @abstractmethod
    def get_uri(self) -> str:
        """Get the full URI of this store."""
        pass


class FileAttachmentStore(AttachmentStore):
    """Local filesystem attachment store (file:// URIs).

    Structure:
        ./uploads/achievements/
        ├── ACH-<reference id>-<unix ts>-<random>.pdf
        └── ...
    """

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, file_name: str) -> Path:
        # Flat namespace, no traversal outside the base directory
        path = (self.base_path / file_name).resolve()
        if path.parent != self.base_path.resolve():
            raise ValueError(f"Invalid attachment file name: {file_name!r}")
        return path

    def save(self, file_name: str, stream: BinaryIO) -> int:
        path = self._path(file_name)
        with open(path, "wb") as dst:
            shutil.copyfileobj(stream, dst)
        return path.stat().st_size

    def delete(self, file_name: str) -> bool:
        path = self._path(file_name)
        if not path.exists():
            return False
        path.unlink()
        return True

    def exists(self, file_name: str) -> bool:
        return self._path(file_name).exists()

    def get_uri(self) -> str:
        return f"file://{self.base_path}"


def create_attachment_store(uri: str) -> AttachmentStore:
    """Factory function to create the appropriate AttachmentStore from a URI.

    Args:
        uri: Base URI (e.g., "file://./uploads/achievements" or "s3://bucket/prefix")

    Raises:
        ValueError: If URI scheme is not supported
    """
    parsed = urlparse(uri)

    if parsed.scheme == "file":
        # file://./uploads -> netloc ".", path "/uploads"; keep relative paths relative
        raw_path = f"{parsed.netloc}{parsed.path}" if parsed.netloc else parsed.path
        return FileAttachmentStore(Path(raw_path))

    elif parsed.scheme == "s3":
        raise NotImplementedError(f"S3 storage not yet implemented. URI: {uri}")

    else:
        raise ValueError(
            f"Unsupported storage scheme: {parsed.scheme}. "
            f"Supported: file://, s3:// (v1)"
        )
