"""
Attachments - per-request file metadata backed by a local blob directory.

The store only moves bytes; the service owns validation, metadata rows and
the draft-only delete rule.
"""
import os
import re
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

import structlog
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.domain import Attachment, MeetingRequest
from app.models.enums import RequestStatus
from app.services.errors import InvalidOperationError, NotFoundError, StorageError, ValidationError

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    """Strip directory parts and replace anything outside [A-Za-z0-9._-]."""
    base = os.path.basename(file_name.replace("\\", "/"))
    return _UNSAFE_CHARS.sub("_", base).strip("._") or "file"


class AttachmentStore:
    """Local filesystem blob store. Paths it returns are relative to its root."""

    def __init__(self, root: str):
        self.root = root

    def write(self, request_id: int, file_name: str, data: bytes) -> str:
        storage_path = os.path.join(str(request_id), f"{uuid4().hex}_{safe_file_name(file_name)}")
        full_path = self.resolve(storage_path)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to store attachment '{file_name}': {e}") from e
        return storage_path

    def resolve(self, storage_path: str) -> str:
        return os.path.join(self.root, storage_path)

    def open_path(self, storage_path: str) -> str:
        """Return the absolute path of a stored file, failing if it is gone."""
        full_path = self.resolve(storage_path)
        if not os.path.isfile(full_path):
            raise StorageError(f"Attachment file is missing from storage: {storage_path}")
        return full_path

    def remove(self, storage_path: str) -> None:
        """Delete a stored file. A file that is already gone is not an error."""
        try:
            os.remove(self.resolve(storage_path))
        except FileNotFoundError:
            logger.warning("attachment_file_already_missing", storage_path=storage_path)
        except OSError as e:
            raise StorageError(f"Failed to delete attachment file '{storage_path}': {e}") from e


def get_attachment_store() -> AttachmentStore:
    """Dependency for FastAPI endpoints to get the configured store."""
    return AttachmentStore(get_settings().UPLOAD_DIR)


class AttachmentService:
    """Validates uploads and keeps attachment metadata in step with the store."""

    def __init__(self, db: Session, store: AttachmentStore):
        self.db = db
        self.store = store
        self.settings = get_settings()

    def _get_request(self, request_id: int) -> MeetingRequest:
        meeting_request = self.db.query(MeetingRequest).filter(MeetingRequest.id == request_id).first()
        if not meeting_request:
            raise NotFoundError("Meeting request not found")
        return meeting_request

    def _get_attachment(self, request_id: int, attachment_id: int) -> Attachment:
        attachment = self.db.query(Attachment).filter(
            Attachment.id == attachment_id,
            Attachment.meeting_request_id == request_id
        ).first()
        if not attachment:
            raise NotFoundError("Attachment not found")
        return attachment

    def list(self, request_id: int) -> List[Attachment]:
        self._get_request(request_id)
        return self.db.query(Attachment).filter(
            Attachment.meeting_request_id == request_id
        ).order_by(Attachment.uploaded_at, Attachment.id).all()

    def validate_upload(self, request_id: int, file_name: Optional[str], size: int) -> None:
        """
        Upload rules:
        - At most MAX_ATTACHMENTS_PER_REQUEST files per request
        - A file name with an allowed extension
        - Non-empty, at most MAX_ATTACHMENT_BYTES
        """
        existing = self.db.query(Attachment).filter(
            Attachment.meeting_request_id == request_id
        ).count()
        if existing >= self.settings.MAX_ATTACHMENTS_PER_REQUEST:
            raise ValidationError(
                f"A request can have at most {self.settings.MAX_ATTACHMENTS_PER_REQUEST} attachments"
            )

        if not file_name or not file_name.strip():
            raise ValidationError("File name is required")

        extension = os.path.splitext(file_name)[1].lower()
        allowed = [ext.lower() for ext in self.settings.ALLOWED_ATTACHMENT_EXTENSIONS]
        if extension not in allowed:
            raise ValidationError(f"File type '{extension or '(none)'}' is not allowed")

        if size == 0:
            raise ValidationError("File is empty")
        if size > self.settings.MAX_ATTACHMENT_BYTES:
            raise ValidationError(
                f"File exceeds the maximum size of {self.settings.MAX_ATTACHMENT_BYTES} bytes"
            )

    def save(
        self,
        request_id: int,
        file_name: Optional[str],
        content_type: Optional[str],
        data: bytes,
        actor: Optional[str]
    ) -> Attachment:
        self._get_request(request_id)
        self.validate_upload(request_id, file_name, len(data))

        # Metadata is only written once the bytes are safely stored
        storage_path = self.store.write(request_id, file_name, data)
        attachment = Attachment(
            meeting_request_id=request_id,
            file_name=file_name,
            size=len(data),
            content_type=content_type,
            uploaded_by=actor,
            uploaded_at=datetime.utcnow(),
            storage_path=storage_path
        )
        self.db.add(attachment)
        self.db.commit()
        self.db.refresh(attachment)

        logger.info(
            "attachment_uploaded",
            request_id=request_id,
            attachment_id=attachment.id,
            size=attachment.size,
            actor=actor
        )
        return attachment

    def open(self, request_id: int, attachment_id: int):
        """Return (attachment, absolute file path) for streaming."""
        attachment = self._get_attachment(request_id, attachment_id)
        return attachment, self.store.open_path(attachment.storage_path)

    def delete(self, request_id: int, attachment_id: int, actor: Optional[str]) -> None:
        meeting_request = self._get_request(request_id)
        attachment = self._get_attachment(request_id, attachment_id)

        if meeting_request.status != RequestStatus.DRAFT:
            raise InvalidOperationError("Attachments can only be deleted while the request is a draft")

        self.store.remove(attachment.storage_path)
        self.db.delete(attachment)
        self.db.commit()

        logger.info("attachment_deleted", request_id=request_id, attachment_id=attachment_id, actor=actor)
