"""
Tests for the request lifecycle.

Each test verifies one transition rule of the workflow:
Draft → Pending → Approved → Confirmed → Announced, with Cancelled as a side-exit.
"""
from datetime import date

import pytest
from app.models.audit import AuditEntry, AuditField
from app.models.enums import RequestStatus
from app.services.errors import (
    InvalidOperationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.services.request_service import RequestService
from app.services.state_machine import (
    ALLOWED_TRANSITIONS,
    LifecycleEngine,
    can_transition,
    validate_transition,
)


def _set_status(db_session, meeting_request, status):
    meeting_request.status = status
    meeting_request.is_draft = status == RequestStatus.DRAFT
    db_session.commit()
    db_session.refresh(meeting_request)


class TestTransitionTable:
    """The single transition table every operation consults."""

    def test_announce_only_from_confirmed(self):
        for status in RequestStatus:
            assert can_transition(status, RequestStatus.ANNOUNCED) == (status == RequestStatus.CONFIRMED)

    def test_nothing_leaves_cancelled(self):
        for target in RequestStatus:
            assert not can_transition(RequestStatus.CANCELLED, target)

    def test_nothing_leaves_announced(self):
        for target in RequestStatus:
            assert not can_transition(RequestStatus.ANNOUNCED, target)

    def test_cancel_not_allowed_from_draft(self):
        """Drafts are deleted, not cancelled."""
        assert not can_transition(RequestStatus.DRAFT, RequestStatus.CANCELLED)

    def test_no_status_transitions_into_draft(self):
        assert RequestStatus.DRAFT not in ALLOWED_TRANSITIONS

    def test_validate_transition_reports_statuses(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(RequestStatus.APPROVED, RequestStatus.APPROVED)

        assert exc_info.value.current_status == RequestStatus.APPROVED
        assert exc_info.value.target_status == RequestStatus.APPROVED
        assert "already Approved" in str(exc_info.value)


class TestHappyPath:
    """Full review path through the engine."""

    def test_full_lifecycle(self, db_session, pending_request, reviewer):
        """
        Pending → Approved → Confirmed → Announced
        """
        engine = LifecycleEngine(db_session)

        assert pending_request.status == RequestStatus.PENDING

        engine.approve(pending_request.id, reviewer.user_id)
        db_session.refresh(pending_request)
        assert pending_request.status == RequestStatus.APPROVED

        engine.confirm(pending_request.id, reviewer.user_id)
        db_session.refresh(pending_request)
        assert pending_request.status == RequestStatus.CONFIRMED

        engine.announce(pending_request.id, reviewer.user_id)
        db_session.refresh(pending_request)
        assert pending_request.status == RequestStatus.ANNOUNCED
        assert pending_request.updated_by == reviewer.user_id

    def test_confirm_directly_from_pending(self, db_session, pending_request, reviewer):
        """Confirming without a prior approve is allowed."""
        engine = LifecycleEngine(db_session)

        engine.confirm(pending_request.id, reviewer.user_id)
        db_session.refresh(pending_request)

        assert pending_request.status == RequestStatus.CONFIRMED

    def test_transition_writes_one_status_entry(self, db_session, pending_request, reviewer):
        engine = LifecycleEngine(db_session)
        before = db_session.query(AuditEntry).count()

        engine.approve(pending_request.id, reviewer.user_id)

        entries = db_session.query(AuditEntry).filter(AuditEntry.id > before).all()
        assert len(entries) == 1
        assert entries[0].field_name == AuditField.STATUS
        assert entries[0].old_value == "Pending"
        assert entries[0].new_value == "Approved"
        assert entries[0].changed_by == reviewer.user_id

    def test_transition_updates_audit_metadata(self, db_session, pending_request, reviewer):
        engine = LifecycleEngine(db_session)
        created_at = pending_request.created_at
        created_by = pending_request.created_by

        engine.approve(pending_request.id, reviewer.user_id)
        db_session.refresh(pending_request)

        assert pending_request.updated_by == reviewer.user_id
        assert pending_request.updated_at >= created_at
        assert pending_request.created_at == created_at
        assert pending_request.created_by == created_by


class TestTransitionLegality:
    """Illegal transitions are refused without writing anything."""

    @pytest.mark.parametrize("status", [
        RequestStatus.DRAFT,
        RequestStatus.PENDING,
        RequestStatus.APPROVED,
        RequestStatus.CANCELLED,
        RequestStatus.ANNOUNCED,
    ])
    def test_announce_requires_confirmed(self, db_session, pending_request, reviewer, status):
        _set_status(db_session, pending_request, status)
        engine = LifecycleEngine(db_session)

        with pytest.raises(InvalidTransitionError):
            engine.announce(pending_request.id, reviewer.user_id)

    @pytest.mark.parametrize("operation", ["approve", "confirm", "announce"])
    def test_cancelled_request_cannot_move(self, db_session, pending_request, reviewer, operation):
        _set_status(db_session, pending_request, RequestStatus.CANCELLED)
        engine = LifecycleEngine(db_session)

        with pytest.raises(InvalidTransitionError):
            getattr(engine, operation)(pending_request.id, reviewer.user_id)

    @pytest.mark.parametrize("status", [
        RequestStatus.APPROVED,
        RequestStatus.CONFIRMED,
        RequestStatus.ANNOUNCED,
        RequestStatus.CANCELLED,
        RequestStatus.DRAFT,
    ])
    def test_approve_only_from_pending(self, db_session, pending_request, reviewer, status):
        _set_status(db_session, pending_request, status)
        engine = LifecycleEngine(db_session)

        with pytest.raises(InvalidTransitionError):
            engine.approve(pending_request.id, reviewer.user_id)

    @pytest.mark.parametrize("status", [
        RequestStatus.CONFIRMED,
        RequestStatus.CANCELLED,
        RequestStatus.DRAFT,
        RequestStatus.ANNOUNCED,
    ])
    def test_confirm_refused(self, db_session, pending_request, reviewer, status):
        _set_status(db_session, pending_request, status)
        engine = LifecycleEngine(db_session)

        with pytest.raises(InvalidTransitionError):
            engine.confirm(pending_request.id, reviewer.user_id)

    def test_refused_transition_writes_nothing(self, db_session, pending_request, reviewer):
        engine = LifecycleEngine(db_session)
        before = db_session.query(AuditEntry).count()

        with pytest.raises(InvalidTransitionError):
            engine.announce(pending_request.id, reviewer.user_id)

        db_session.refresh(pending_request)
        assert pending_request.status == RequestStatus.PENDING
        assert db_session.query(AuditEntry).count() == before

    def test_unknown_request(self, db_session, reviewer):
        engine = LifecycleEngine(db_session)

        with pytest.raises(NotFoundError):
            engine.approve(999, reviewer.user_id)


class TestCancel:
    """Cancellation rules."""

    def test_cancel_records_status_and_reason(self, db_session, pending_request, reviewer):
        engine = LifecycleEngine(db_session)
        before = db_session.query(AuditEntry).count()

        engine.cancel(pending_request.id, "Chair unavailable", reviewer.user_id)
        db_session.refresh(pending_request)

        assert pending_request.status == RequestStatus.CANCELLED
        entries = db_session.query(AuditEntry).filter(AuditEntry.id > before).all()
        by_field = {entry.field_name: entry for entry in entries}
        assert len(entries) == 2
        assert by_field[AuditField.STATUS].new_value == "Cancelled"
        assert by_field[AuditField.CANCELLATION_REASON].old_value is None
        assert by_field[AuditField.CANCELLATION_REASON].new_value == "Chair unavailable"

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_cancel_requires_reason(self, db_session, pending_request, reviewer, reason):
        """
        A blank reason fails with ValidationError and changes nothing.
        """
        engine = LifecycleEngine(db_session)
        before = db_session.query(AuditEntry).count()

        with pytest.raises(ValidationError):
            engine.cancel(pending_request.id, reason, reviewer.user_id)

        db_session.refresh(pending_request)
        assert pending_request.status == RequestStatus.PENDING
        assert db_session.query(AuditEntry).count() == before

    def test_cannot_cancel_twice(self, db_session, pending_request, reviewer):
        engine = LifecycleEngine(db_session)
        engine.cancel(pending_request.id, "Duplicate", reviewer.user_id)

        with pytest.raises(InvalidTransitionError):
            engine.cancel(pending_request.id, "Again", reviewer.user_id)

    @pytest.mark.parametrize("status", [RequestStatus.APPROVED, RequestStatus.CONFIRMED])
    def test_cancel_from_reviewed_statuses(self, db_session, pending_request, reviewer, status):
        _set_status(db_session, pending_request, status)
        engine = LifecycleEngine(db_session)

        engine.cancel(pending_request.id, "No longer needed", reviewer.user_id)
        db_session.refresh(pending_request)

        assert pending_request.status == RequestStatus.CANCELLED

    def test_cannot_cancel_draft(self, db_session, draft_request, reviewer):
        engine = LifecycleEngine(db_session)

        with pytest.raises(InvalidTransitionError):
            engine.cancel(draft_request.id, "Not needed", reviewer.user_id)


class TestDraftSubmission:
    """Submitting a draft through update moves it to Pending."""

    def test_submit_draft(self, db_session, draft_request, requestor):
        service = RequestService(db_session)

        meeting_request, _ = service.update(
            draft_request.id,
            {"meeting_date": date(2026, 5, 1), "is_draft": False},
            requestor
        )

        assert meeting_request.status == RequestStatus.PENDING
        assert meeting_request.is_draft is False
        assert meeting_request.reference_number is not None
        assert len(meeting_request.reference_number) == 5

    def test_submit_requires_required_fields(self, db_session, draft_request, requestor):
        service = RequestService(db_session)

        with pytest.raises(ValidationError):
            service.update(draft_request.id, {"is_draft": False}, requestor)

        db_session.refresh(draft_request)
        assert draft_request.status == RequestStatus.DRAFT

    def test_submitted_request_cannot_return_to_draft(self, db_session, pending_request, requestor):
        service = RequestService(db_session)

        with pytest.raises(InvalidOperationError):
            service.update(pending_request.id, {"is_draft": True}, requestor)


class TestDelete:
    """Only drafts may be deleted."""

    def test_delete_non_draft_refused(self, db_session, pending_request, requestor, store):
        engine = LifecycleEngine(db_session, store)

        with pytest.raises(InvalidOperationError):
            engine.delete(pending_request.id, requestor.user_id)

        assert db_session.get(type(pending_request), pending_request.id) is not None

    def test_delete_unknown(self, db_session, requestor, store):
        engine = LifecycleEngine(db_session, store)

        with pytest.raises(NotFoundError):
            engine.delete(12345, requestor.user_id)
