"""
Attachment handling: proof-file validation and blob storage.
"""

from .storage import AttachmentStore, FileAttachmentStore, create_attachment_store
from .uploader import AttachmentUploader, IncomingFile, get_attachment_uploader

__all__ = [
    "AttachmentStore",
    "AttachmentUploader",
    "FileAttachmentStore",
    "IncomingFile",
    "create_attachment_store",
    "get_attachment_uploader",
]
