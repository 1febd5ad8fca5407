"""
Validation and storage of uploaded log attachments.

A request's files are read and validated as a batch before anything is
written, so a batch that breaks a limit is rejected whole. Writes that fail
part-way through are rolled back by deleting what was already stored.
"""

import logging
import os
import secrets
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from fastapi import UploadFile

from database import utcnow
from errors import ValidationError
from schemas import Attachment
from storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

MAX_PHOTOS_PER_UPLOAD = 10
MAX_DOCUMENTS_PER_UPLOAD = 10
PHOTO_MAX_BYTES = 5 * 1024 * 1024
DOCUMENT_MAX_BYTES = 10 * 1024 * 1024

DOCUMENT_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/png",
    "image/gif",
}


class FileKind(str, Enum):
    PHOTOS = "photos"
    DOCUMENTS = "documents"

    @property
    def log_field(self) -> str:
        return "work_photos" if self is FileKind.PHOTOS else "documents"


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()


async def read_upload(upload: UploadFile, limit: int) -> IncomingFile:
    # read one byte past the limit so oversize files are detectable without
    # pulling the whole body into memory
    data = await upload.read(limit + 1)
    return IncomingFile(
        filename=upload.filename or "file",
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


async def read_uploads(uploads: Optional[Iterable[UploadFile]], limit: int) -> List[IncomingFile]:
    return [await read_upload(u, limit) for u in uploads or [] if u is not None and u.filename]


def validate_photos(files: List[IncomingFile], field: str = "photos"):
    if not files:
        raise ValidationError(field, "No photos uploaded")
    if len(files) > MAX_PHOTOS_PER_UPLOAD:
        raise ValidationError(field, f"Too many photos: at most {MAX_PHOTOS_PER_UPLOAD} per upload, got {len(files)}")
    for f in files:
        if not f.content_type.startswith("image/"):
            raise ValidationError(field, f"{f.filename}: only image files are allowed")
        if f.size > PHOTO_MAX_BYTES:
            raise ValidationError(field, f"{f.filename}: photo exceeds the 5MB limit")


def validate_documents(files: List[IncomingFile], field: str = "documents", max_count: Optional[int] = None):
    if not files:
        raise ValidationError(field, "No documents uploaded")
    if max_count is not None and len(files) > max_count:
        raise ValidationError(field, f"At most {max_count} document(s) allowed, got {len(files)}")
    for f in files:
        if f.content_type not in DOCUMENT_MIME_TYPES:
            raise ValidationError(field, f"{f.filename}: only PDF, DOC, DOCX, XLS, XLSX and image files are allowed")
        if f.size > DOCUMENT_MAX_BYTES:
            raise ValidationError(field, f"{f.filename}: document exceeds the 10MB limit")


def document_type(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    if ext == ".pdf":
        return "delivery_note"
    if ext in (".jpg", ".jpeg", ".png", ".gif"):
        return "receipt"
    if ext in (".doc", ".docx", ".xls", ".xlsx"):
        return "invoice"
    return "other"


def storage_key(folder: str, extension: str) -> str:
    return f"{folder}/{int(time.time() * 1000)}-{secrets.token_hex(6)}{extension}"


def store_batch(storage: StorageBackend, items: List[Tuple[IncomingFile, str, str]]) -> List[dict]:
    """Store ``(file, folder, attachment type)`` items as one unit.

    Returns attachment records ready to embed in a log. If any write fails
    the files written so far are deleted and the error is re-raised.
    """
    stored: List[dict] = []
    try:
        for incoming, folder, kind in items:
            key = storage_key(folder, incoming.extension)
            url = storage.put(incoming.data, key, incoming.content_type)
            stored.append(Attachment(
                id=uuid.uuid4().hex,
                key=key,
                url=url,
                original_name=incoming.filename,
                content_type=incoming.content_type,
                size=incoming.size,
                type=kind,
                uploaded_at=utcnow(),
            ).model_dump())
    except Exception:
        logger.warning("Upload failed after %d file(s); rolling back", len(stored))
        discard(storage, stored)
        raise
    return stored


def discard(storage: StorageBackend, attachments: Iterable[dict]):
    """Best-effort removal of stored files; failures are logged."""
    for att in attachments:
        if not att:
            continue
        try:
            storage.delete(att["key"])
        except StorageError:
            logger.exception("Could not remove stored file %s", att.get("key"))
