"""
Request service - submit, save draft, read and edit meeting requests.

Status changes are not made here; they go through the LifecycleEngine. The
one exception is submitting a draft via update, which the engine performs
inside this service's transaction.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth import Identity
from app.models.audit import AuditField, EDITABLE_FIELDS
from app.models.domain import MeetingRequest
from app.models.enums import RequestStatus
from app.services.attachments import AttachmentStore
from app.services.audit_recorder import AuditRecorder
from app.services.errors import InvalidOperationError, NotFoundError, ValidationError
from app.services.reference_numbers import generate_reference_number
from app.services.state_machine import LifecycleEngine

logger = structlog.get_logger(__name__)

# Columns that may hold NULL; every other text column stores "" when empty
NULLABLE_FIELDS = {"meeting_date", "alternate_date", "requestor_email"}


def _coerce(attr: str, value: Any) -> Any:
    if value is None and attr not in NULLABLE_FIELDS:
        return ""
    if attr in NULLABLE_FIELDS and isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, str) and attr != "description" and attr != "comments":
        return value.strip()
    return value


def validate_required(title: Optional[str], meeting_date) -> None:
    """Submitted requests need a title and a meeting date."""
    missing = []
    if title is None or not str(title).strip():
        missing.append("title")
    if meeting_date is None:
        missing.append("meetingDate")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


class RequestService:
    """Create, read and update meeting requests with a complete audit trail."""

    def __init__(self, db: Session, store: Optional[AttachmentStore] = None):
        self.db = db
        self.audit = AuditRecorder(db)
        self.engine = LifecycleEngine(db, store)

    def get(self, request_id: int) -> MeetingRequest:
        meeting_request = self.db.query(MeetingRequest).filter(MeetingRequest.id == request_id).first()
        if not meeting_request:
            raise NotFoundError("Meeting request not found")
        return meeting_request

    def find_duplicate(self, data: Dict[str, Any]) -> Optional[MeetingRequest]:
        """A submitted request with the same title, meeting date and category (case-insensitive)."""
        return self.db.query(MeetingRequest).filter(
            MeetingRequest.is_draft.is_(False),
            func.lower(MeetingRequest.title) == (data.get("title") or "").strip().lower(),
            MeetingRequest.meeting_date == data.get("meeting_date"),
            func.lower(MeetingRequest.category) == (data.get("category") or "").strip().lower()
        ).order_by(MeetingRequest.id).first()

    def _new_request(self, data: Dict[str, Any], identity: Identity, status: RequestStatus) -> MeetingRequest:
        now = datetime.utcnow()
        values = {attr: _coerce(attr, data.get(attr)) for attr in EDITABLE_FIELDS}
        # Default the requestor to the signed-in user
        if not values["requestor_name"] and identity.name:
            values["requestor_name"] = identity.name
        if not values["requestor_email"] and identity.email:
            values["requestor_email"] = identity.email

        meeting_request = MeetingRequest(
            **values,
            status=status,
            is_draft=status == RequestStatus.DRAFT,
            created_at=now,
            created_by=identity.user_id,
            updated_at=now,
            updated_by=identity.user_id
        )
        return meeting_request

    def _record_creation(self, meeting_request: MeetingRequest, actor: str) -> None:
        changes = list(self.audit.creation_changes(meeting_request, EDITABLE_FIELDS))
        changes.append((AuditField.STATUS, None, meeting_request.status))
        changes.append((AuditField.REFERENCE_NUMBER, None, meeting_request.reference_number))
        self.audit.record_field_changes(meeting_request.id, actor, meeting_request.created_at, changes)

    def create(
        self,
        data: Dict[str, Any],
        identity: Identity,
        confirm_duplicate: bool = False
    ) -> Tuple[MeetingRequest, bool]:
        """
        Submit a new request. Returns (request, duplicate).

        When a likely duplicate exists and the caller has not confirmed, the
        existing request is returned with duplicate=True and nothing is written.
        """
        validate_required(data.get("title"), data.get("meeting_date"))

        if not confirm_duplicate:
            existing = self.find_duplicate(data)
            if existing is not None:
                logger.info("duplicate_request_detected", request_id=existing.id, actor=identity.user_id)
                return existing, True

        meeting_request = self._new_request(data, identity, RequestStatus.PENDING)
        meeting_request.reference_number = generate_reference_number(self.db)
        self.db.add(meeting_request)
        self.db.flush()
        self._record_creation(meeting_request, identity.user_id)
        self.db.commit()
        self.db.refresh(meeting_request)

        logger.info(
            "request_created",
            request_id=meeting_request.id,
            reference_number=meeting_request.reference_number,
            actor=identity.user_id
        )
        return meeting_request, False

    def save_draft(self, data: Dict[str, Any], identity: Identity) -> MeetingRequest:
        """Save a draft. No required-field validation, no reference number."""
        meeting_request = self._new_request(data, identity, RequestStatus.DRAFT)
        self.db.add(meeting_request)
        self.db.flush()
        self._record_creation(meeting_request, identity.user_id)
        self.db.commit()
        self.db.refresh(meeting_request)

        logger.info("draft_saved", request_id=meeting_request.id, actor=identity.user_id)
        return meeting_request

    def update(self, request_id: int, changes: Dict[str, Any], identity: Identity) -> Tuple[MeetingRequest, int]:
        """
        Apply a partial update. Returns (request, number of audit entries written).

        Only keys present in `changes` are touched. Each one is diffed against
        the persisted value; unchanged fields write no audit entry.
        `is_draft=False` on a draft submits it.
        """
        meeting_request = self.get(request_id)
        changes = dict(changes)
        is_draft = changes.pop("is_draft", None)

        submitting = is_draft is False and meeting_request.status == RequestStatus.DRAFT
        if is_draft is True and meeting_request.status != RequestStatus.DRAFT:
            raise InvalidOperationError("Submitted requests cannot be turned back into drafts")

        submitted = {attr: _coerce(attr, value) for attr, value in changes.items() if attr in EDITABLE_FIELDS}

        # Validate against the merged state before touching anything
        if submitting or meeting_request.status != RequestStatus.DRAFT:
            validate_required(
                submitted.get("title", meeting_request.title),
                submitted.get("meeting_date", meeting_request.meeting_date)
            )

        # The recorder skips pairs that normalize to the same value
        field_changes = self.audit.diff(meeting_request, submitted, EDITABLE_FIELDS)
        now = datetime.utcnow()
        written = self.audit.record_field_changes(meeting_request.id, identity.user_id, now, field_changes)

        for attr, value in submitted.items():
            setattr(meeting_request, attr, value)

        if written:
            meeting_request.updated_at = now
            meeting_request.updated_by = identity.user_id
        if submitting:
            self.engine.submit(meeting_request, identity.user_id, now)

        self.db.commit()
        self.db.refresh(meeting_request)

        logger.info(
            "request_updated",
            request_id=request_id,
            actor=identity.user_id,
            fields_changed=written,
            submitted=submitting
        )
        return meeting_request, written
