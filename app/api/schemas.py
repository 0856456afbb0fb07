"""Pydantic schemas for request/response validation."""
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.enums import RequestStatus


def parse_flexible_date(value: Any) -> Optional[date]:
    """
    Accept yyyy-MM-dd, ISO datetimes (date part kept), unix seconds, or blank.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError("Invalid date")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).date()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
        try:
            return datetime.strptime(text, "%m/%d/%Y").date()
        except ValueError:
            raise ValueError(f"Invalid date: {value}")
    raise ValueError(f"Invalid date: {value}")


class CamelModel(BaseModel):
    """JSON in and out uses camelCase; snake_case names are accepted too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# MeetingRequest input schemas
class MeetingRequestBody(CamelModel):
    title: Optional[str] = Field(None, max_length=200)
    meeting_date: Optional[date] = None
    alternate_date: Optional[date] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    comments: Optional[str] = None
    classification: Optional[str] = None
    requestor_name: Optional[str] = None
    requestor_email: Optional[str] = None
    request_type: Optional[str] = None
    country: Optional[str] = None

    @field_validator("meeting_date", "alternate_date", mode="before")
    @classmethod
    def _flexible_date(cls, value):
        return parse_flexible_date(value)


class MeetingRequestCreate(MeetingRequestBody):
    # Set after the caller has seen a duplicate warning and wants to submit anyway
    confirm_duplicate: bool = False


class MeetingRequestUpdate(MeetingRequestBody):
    # False submits a draft
    is_draft: Optional[bool] = None


class CancelBody(CamelModel):
    reason: Optional[str] = None


# MeetingRequest output schemas
class MeetingRequestResponse(CamelModel):
    id: int
    reference_number: Optional[str]
    title: str
    meeting_date: Optional[date]
    alternate_date: Optional[date]
    category: str
    subcategory: str
    description: str
    comments: str
    classification: str
    requestor_name: str
    requestor_email: Optional[str]
    request_type: str
    country: str
    status: RequestStatus
    is_draft: bool
    created_at: datetime
    created_by: Optional[str]
    updated_at: datetime
    updated_by: Optional[str]


class MeetingRequestSummary(CamelModel):
    """List row."""
    id: int
    reference_number: Optional[str]
    title: str
    meeting_date: Optional[date]
    category: str
    classification: str
    requestor_name: str
    requestor_email: Optional[str]
    request_type: str
    country: str
    status: RequestStatus
    is_draft: bool
    created_at: datetime


class AuditEntryResponse(CamelModel):
    id: int
    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]
    changed_by: Optional[str]
    changed_at: datetime


class AttachmentResponse(CamelModel):
    id: int
    meeting_request_id: int
    file_name: str
    size: int
    content_type: Optional[str]
    uploaded_by: Optional[str]
    uploaded_at: datetime


class CreateResponse(CamelModel):
    id: int
    duplicate: Optional[bool] = None


class IdResponse(CamelModel):
    id: int


class UpdateResponse(CamelModel):
    id: int
    message: str


class MessageResponse(CamelModel):
    message: str


class DetailResponse(CamelModel):
    id: int
    meeting_request: MeetingRequestResponse
    audit_logs: List[AuditEntryResponse] = []
    status_history: List[AuditEntryResponse] = []


class PageResponse(CamelModel):
    items: List[MeetingRequestSummary]
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_more: bool


# Error response
class ErrorResponse(BaseModel):
    """Response when an operation fails."""
    kind: str
    message: str
