"""
Lifecycle engine for meeting requests.

This is the core enforcement mechanism - all status transitions MUST go through here.
The engine only enforces legality; callers check capabilities before calling it.
"""
from datetime import datetime
from typing import Dict, FrozenSet, Optional

import structlog
from sqlalchemy.orm import Session

from app.models.audit import AuditEntry, AuditField
from app.models.domain import Attachment, MeetingRequest
from app.models.enums import RequestStatus
from app.services.attachments import AttachmentStore
from app.services.audit_recorder import AuditRecorder
from app.services.errors import (
    InvalidOperationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.services.reference_numbers import generate_reference_number

logger = structlog.get_logger(__name__)


# Target status -> statuses it may be entered from. Nothing else is legal.
ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.DRAFT}),
    RequestStatus.APPROVED: frozenset({RequestStatus.PENDING}),
    # Confirming straight from Pending is allowed
    RequestStatus.CONFIRMED: frozenset({RequestStatus.PENDING, RequestStatus.APPROVED}),
    RequestStatus.ANNOUNCED: frozenset({RequestStatus.CONFIRMED}),
    RequestStatus.CANCELLED: frozenset({
        RequestStatus.PENDING,
        RequestStatus.APPROVED,
        RequestStatus.CONFIRMED,
    }),
}

TERMINAL_STATUSES = frozenset({RequestStatus.ANNOUNCED, RequestStatus.CANCELLED})


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return current in ALLOWED_TRANSITIONS.get(target, frozenset())


def validate_transition(current: RequestStatus, target: RequestStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is in the transition table."""
    if can_transition(current, target):
        return

    if current == target:
        reason = f"Request is already {current.value}"
    elif current in TERMINAL_STATUSES:
        reason = f"Request is {current.value} and can no longer change status"
    elif current == RequestStatus.DRAFT:
        reason = "Draft requests must be submitted first"
    else:
        reason = f"Cannot move from {current.value} to {target.value}"

    raise InvalidTransitionError(
        f"Invalid transition: {reason}",
        current_status=current,
        target_status=target
    )


class LifecycleEngine:
    """Enforces status transition invariants and writes their audit trail."""

    def __init__(self, db: Session, store: Optional[AttachmentStore] = None):
        self.db = db
        self.store = store
        self.audit = AuditRecorder(db)

    def _get_request(self, request_id: int) -> MeetingRequest:
        meeting_request = self.db.query(MeetingRequest).filter(MeetingRequest.id == request_id).first()
        if not meeting_request:
            raise NotFoundError("Meeting request not found")
        return meeting_request

    def _apply(
        self,
        meeting_request: MeetingRequest,
        target: RequestStatus,
        actor: Optional[str],
        now: datetime
    ) -> RequestStatus:
        """Validate and apply a status change, recording the Status entry. Does not commit."""
        current = meeting_request.status
        validate_transition(current, target)

        meeting_request.status = target
        meeting_request.is_draft = target == RequestStatus.DRAFT
        meeting_request.updated_at = now
        meeting_request.updated_by = actor
        self.audit.record_field_changes(
            meeting_request.id,
            actor,
            now,
            [(AuditField.STATUS, current, target)]
        )
        return current

    def _transition(self, request_id: int, target: RequestStatus, actor: Optional[str]) -> MeetingRequest:
        meeting_request = self._get_request(request_id)
        now = datetime.utcnow()
        previous = self._apply(meeting_request, target, actor, now)
        self.db.commit()
        self.db.refresh(meeting_request)

        logger.info(
            "request_status_changed",
            request_id=request_id,
            actor=actor,
            from_status=previous.value,
            to_status=target.value
        )
        return meeting_request

    def approve(self, request_id: int, actor: Optional[str]) -> MeetingRequest:
        """Pending → Approved."""
        return self._transition(request_id, RequestStatus.APPROVED, actor)

    def confirm(self, request_id: int, actor: Optional[str]) -> MeetingRequest:
        """Pending or Approved → Confirmed."""
        return self._transition(request_id, RequestStatus.CONFIRMED, actor)

    def announce(self, request_id: int, actor: Optional[str]) -> MeetingRequest:
        """Confirmed → Announced. Announced is terminal."""
        return self._transition(request_id, RequestStatus.ANNOUNCED, actor)

    def cancel(self, request_id: int, reason: Optional[str], actor: Optional[str]) -> MeetingRequest:
        """
        Pending, Approved or Confirmed → Cancelled.

        Invariants:
        - A non-blank reason is required, checked before anything else
        - Writes a Status entry and a Cancellation Reason entry
        """
        if reason is None or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        reason = reason.strip()

        meeting_request = self._get_request(request_id)
        now = datetime.utcnow()
        previous = self._apply(meeting_request, RequestStatus.CANCELLED, actor, now)
        self.audit.record_field_changes(
            meeting_request.id,
            actor,
            now,
            [(AuditField.CANCELLATION_REASON, None, reason)]
        )
        self.db.commit()
        self.db.refresh(meeting_request)

        logger.info(
            "request_status_changed",
            request_id=request_id,
            actor=actor,
            from_status=previous.value,
            to_status=RequestStatus.CANCELLED.value
        )
        return meeting_request

    def submit(self, meeting_request: MeetingRequest, actor: Optional[str], now: datetime) -> None:
        """
        Draft → Pending, assigning a reference number if the request has none.

        Does not commit; used inside the update transaction.
        """
        self._apply(meeting_request, RequestStatus.PENDING, actor, now)
        if not meeting_request.reference_number:
            reference_number = generate_reference_number(self.db)
            meeting_request.reference_number = reference_number
            self.audit.record_field_changes(
                meeting_request.id,
                actor,
                now,
                [(AuditField.REFERENCE_NUMBER, None, reference_number)]
            )
        logger.info(
            "request_submitted",
            request_id=meeting_request.id,
            actor=actor,
            reference_number=meeting_request.reference_number
        )

    def delete(self, request_id: int, actor: Optional[str]) -> None:
        """
        Delete a draft with its attachments and audit entries.

        Order: backing files, then audit rows, attachment rows and the request
        row in a single commit.
        """
        meeting_request = self._get_request(request_id)
        if meeting_request.status != RequestStatus.DRAFT:
            raise InvalidOperationError(
                f"Only draft requests can be deleted. Current status: {meeting_request.status.value}"
            )

        attachments = self.db.query(Attachment).filter(
            Attachment.meeting_request_id == request_id
        ).all()
        audit_entries = self.db.query(AuditEntry).filter(
            AuditEntry.meeting_request_id == request_id
        ).all()

        if attachments and self.store is None:
            raise InvalidOperationError("No attachment store configured to delete attachment files")
        # Files go first. If one removal fails the rows stay and a retry finishes
        # the job, since files that are already gone are skipped.
        for attachment in attachments:
            self.store.remove(attachment.storage_path)

        for entry in audit_entries:
            self.db.delete(entry)
        for attachment in attachments:
            self.db.delete(attachment)
        self.db.delete(meeting_request)
        self.db.commit()

        logger.info(
            "draft_deleted",
            request_id=request_id,
            actor=actor,
            attachments=len(attachments),
            audit_entries=len(audit_entries)
        )
