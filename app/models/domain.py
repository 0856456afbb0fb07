"""Domain models - the meeting request and its attachments."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Date, DateTime, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.enums import RequestStatus


class MeetingRequest(Base):
    """
    A meeting request progresses: Draft → Pending → Approved → Confirmed → Announced.
    Cancelled is a terminal side-exit from Pending, Approved or Confirmed.

    Invariants enforced here:
    - Status is always one of the six allowed statuses
    - reference_number is unique when present
    - is_draft is True exactly when status is Draft (handled in service layer)
    """
    __tablename__ = "meeting_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # 5-digit reference number, e.g. "01234". Assigned once, on first submission.
    reference_number = Column(String(5), nullable=True, unique=True, index=True)

    title = Column(String, nullable=False, default="")
    meeting_date = Column(Date, nullable=True)
    alternate_date = Column(Date, nullable=True)
    category = Column(String, nullable=False, default="")
    subcategory = Column(String, nullable=False, default="")
    description = Column(String, nullable=False, default="")
    comments = Column(String, nullable=False, default="")
    classification = Column(String, nullable=False, default="")

    # Requestor details
    requestor_name = Column(String, nullable=False, default="", index=True)
    requestor_email = Column(String, nullable=True, index=True)
    request_type = Column(String, nullable=False, default="")
    country = Column(String, nullable=False, default="")

    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.DRAFT, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)

    # Timestamps and actors
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_by = Column(String, nullable=True)

    # Relationships
    audit_entries = relationship("AuditEntry", back_populates="meeting_request", cascade="all, delete-orphan")
    attachments = relationship("Attachment", back_populates="meeting_request", cascade="all, delete-orphan")


class Attachment(Base):
    """
    File metadata for a request. The bytes live in the blob store at storage_path.

    Invariants:
    - At most MAX_ATTACHMENTS_PER_REQUEST per request
    - Deletable only while the parent request is a draft
    """
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    meeting_request_id = Column(Integer, ForeignKey("meeting_requests.id"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    content_type = Column(String, nullable=True)
    uploaded_by = Column(String, nullable=True)
    uploaded_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    storage_path = Column(String, nullable=False)

    meeting_request = relationship("MeetingRequest", back_populates="attachments")
