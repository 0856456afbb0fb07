"""
Field-level audit log for meeting requests.

Each row records one field's old and new value for one mutation. Rows are
immutable and append-only; they are only removed when their draft request
is deleted.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class AuditEntry(Base):
    """
    Immutable audit entry for one field change.

    Invariants:
    - Written only when the normalized old and new values differ
    - Once written, never edited
    - Append-only
    """
    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    meeting_request_id = Column(Integer, ForeignKey("meeting_requests.id"), nullable=False, index=True)
    field_name = Column(String, nullable=False, index=True)  # e.g., "Status", "Meeting Date"
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    changed_by = Column(String, nullable=True)  # Nullable for system changes
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    meeting_request = relationship("MeetingRequest", back_populates="audit_entries")


# Logical field names for consistency
class AuditField:
    """Human-readable field names used in audit entries."""
    TITLE = "Title"
    MEETING_DATE = "Meeting Date"
    ALTERNATE_DATE = "Alternate Date"
    CATEGORY = "Category"
    SUBCATEGORY = "Subcategory"
    DESCRIPTION = "Description"
    COMMENTS = "Comments"
    CLASSIFICATION = "Classification"
    REQUESTOR_NAME = "Requestor Name"
    REQUESTOR_EMAIL = "Requestor Email"
    REQUEST_TYPE = "Request Type"
    COUNTRY = "Country"
    REFERENCE_NUMBER = "Reference Number"

    # Lifecycle
    STATUS = "Status"
    CANCELLATION_REASON = "Cancellation Reason"


# Entity attribute -> logical field name, for every user-editable field
EDITABLE_FIELDS = {
    "title": AuditField.TITLE,
    "meeting_date": AuditField.MEETING_DATE,
    "alternate_date": AuditField.ALTERNATE_DATE,
    "category": AuditField.CATEGORY,
    "subcategory": AuditField.SUBCATEGORY,
    "description": AuditField.DESCRIPTION,
    "comments": AuditField.COMMENTS,
    "classification": AuditField.CLASSIFICATION,
    "requestor_name": AuditField.REQUESTOR_NAME,
    "requestor_email": AuditField.REQUESTOR_EMAIL,
    "request_type": AuditField.REQUEST_TYPE,
    "country": AuditField.COUNTRY,
}
