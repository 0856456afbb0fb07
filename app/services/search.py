"""
Page-local free-text search over already-fetched list items.

This never touches the database: it filters whatever page(s) the client has
loaded, so matches outside those pages are only found after loading more.
"""
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Optional

MISSING_DATE = "—"


def format_date(value: Any) -> str:
    """Format a meeting date as M/D/YYYY, or an em dash when absent or unparseable."""
    if value is None or value == "":
        return MISSING_DATE
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return MISSING_DATE
    if not isinstance(value, date):
        return MISSING_DATE
    return f"{value.month}/{value.day}/{value.year}"


def _first(item: Mapping[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = item.get(key)
        if value is not None:
            return value
    return None


def searchable_fields(item: Mapping[str, Any]) -> List[str]:
    """The fields search looks at. Accepts list-item keys and their legacy aliases."""
    fields = [
        _first(item, "referenceNumber", "ReferenceNumber"),
        _first(item, "requestorName", "requestor"),
        _first(item, "requestType", "type"),
        item.get("country"),
        _first(item, "title", "meetingTitle"),
        format_date(_first(item, "meetingDate", "boardDate", "MeetingDate")),
    ]
    return ["" if value is None else str(value) for value in fields]


def matches_search(item: Mapping[str, Any], search_term: Optional[str]) -> bool:
    """Case-insensitive substring match of the search term against the searchable fields."""
    if not search_term or not search_term.strip():
        return True

    query = search_term.lower().strip()
    return any(query in value.lower() for value in searchable_fields(item))


def filter_page(items: Iterable[Mapping[str, Any]], search_term: Optional[str]) -> List[Mapping[str, Any]]:
    return [item for item in items if matches_search(item, search_term)]
