"""
Query/list service - filtered, ordered, paginated views over meeting requests.

Read-only. Ordering is created_at desc with id desc as tiebreak, so offset
pages stay stable across requests.
"""
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.domain import MeetingRequest
from app.models.enums import RequestStatus

logger = structlog.get_logger(__name__)


@dataclass
class ListFilters:
    """Optional list filters. Blank strings are treated as absent."""
    classification: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    # Matches stored requestor email OR requestor name
    requestor_identity: Optional[str] = None


@dataclass
class PageResult:
    items: List[MeetingRequest] = field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total_count: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.total_count else 0

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total_count


def clamp_paging(page: Optional[int], page_size: Optional[int]):
    """Default and clamp paging: page >= 1, 1 <= page_size <= MAX_PAGE_SIZE."""
    settings = get_settings()
    page = 1 if page is None else max(1, page)
    if page_size is None:
        page_size = settings.DEFAULT_PAGE_SIZE
    page_size = min(max(1, page_size), settings.MAX_PAGE_SIZE)
    return page, page_size


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


class QueryService:
    """Builds list queries over the meeting_requests table."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered_query(self, filters: ListFilters):
        q = self.db.query(MeetingRequest)

        if _present(filters.classification):
            q = q.filter(func.lower(MeetingRequest.classification) == filters.classification.strip().lower())
        if _present(filters.category):
            q = q.filter(func.lower(MeetingRequest.category) == filters.category.strip().lower())
        if _present(filters.status):
            try:
                status = RequestStatus.parse(filters.status)
            except ValueError:
                # Unknown status matches nothing
                return None
            q = q.filter(MeetingRequest.status == status)
        if filters.start_date is not None:
            q = q.filter(MeetingRequest.meeting_date.isnot(None), MeetingRequest.meeting_date >= filters.start_date)
        if filters.end_date is not None:
            q = q.filter(MeetingRequest.meeting_date.isnot(None), MeetingRequest.meeting_date <= filters.end_date)
        if _present(filters.requestor_identity):
            identity = filters.requestor_identity.strip().lower()
            # Older records have no email, only the display name
            q = q.filter(or_(
                func.lower(MeetingRequest.requestor_email) == identity,
                func.lower(MeetingRequest.requestor_name) == identity
            ))
        return q

    def list(
        self,
        filters: Optional[ListFilters] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None
    ) -> PageResult:
        filters = filters or ListFilters()
        page, page_size = clamp_paging(page, page_size)

        q = self._filtered_query(filters)
        if q is None:
            return PageResult(items=[], page=page, page_size=page_size, total_count=0)

        total_count = q.count()
        items = q.order_by(
            MeetingRequest.created_at.desc(),
            MeetingRequest.id.desc()
        ).offset((page - 1) * page_size).limit(page_size).all()

        logger.debug(
            "requests_listed",
            page=page,
            page_size=page_size,
            total_count=total_count,
            returned=len(items)
        )
        return PageResult(items=items, page=page, page_size=page_size, total_count=total_count)
