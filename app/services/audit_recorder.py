"""
Audit recorder - the append-only, field-level change log for meeting requests.

Every mutating operation (create, update, transition) goes through here.
Values are normalized to canonical strings before comparison so an entry is
written only for fields that actually changed.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog
from sqlalchemy.orm import Session

from app.models.audit import AuditEntry, AuditField

logger = structlog.get_logger(__name__)

FieldChange = Tuple[str, Any, Any]


def normalize_value(value: Any) -> Optional[str]:
    """
    Serialize a field value to its canonical audit string.

    None and blank strings are both null; dates use yyyy-MM-dd.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    text = str(value)
    if not text.strip():
        return None
    return text


class AuditRecorder:
    """Writes and reads audit entries. Never commits - the caller owns the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def record_field_changes(
        self,
        request_id: int,
        actor: Optional[str],
        timestamp: datetime,
        changes: Iterable[FieldChange]
    ) -> int:
        """
        Write one entry per (field_name, old, new) whose normalized values differ.

        Returns the number of entries written (may be zero).
        """
        written = 0
        for field_name, old_value, new_value in changes:
            old_text = normalize_value(old_value)
            new_text = normalize_value(new_value)
            if old_text == new_text:
                continue
            self.db.add(AuditEntry(
                meeting_request_id=request_id,
                field_name=field_name,
                old_value=old_text,
                new_value=new_text,
                changed_by=actor,
                changed_at=timestamp
            ))
            written += 1

        if written:
            logger.debug("audit_entries_recorded", request_id=request_id, actor=actor, count=written)
        return written

    def diff(
        self,
        entity: Any,
        submitted: Mapping[str, Any],
        fields: Mapping[str, str]
    ) -> List[FieldChange]:
        """
        Build the change list for a partial update.

        Only attributes present in `submitted` are compared; `fields` maps
        entity attribute -> logical field name.
        """
        changes = []
        for attr, field_name in fields.items():
            if attr not in submitted:
                continue
            changes.append((field_name, getattr(entity, attr), submitted[attr]))
        return changes

    def list_for_request(self, request_id: int) -> List[AuditEntry]:
        """All entries for a request, newest first."""
        return self.db.query(AuditEntry).filter(
            AuditEntry.meeting_request_id == request_id
        ).order_by(
            AuditEntry.changed_at.desc(),
            AuditEntry.id.desc()
        ).all()

    def status_changes(self, request_id: int) -> List[AuditEntry]:
        """The Status sub-timeline of a request, newest first."""
        return [
            entry for entry in self.list_for_request(request_id)
            if entry.field_name == AuditField.STATUS
        ]

    def creation_changes(self, entity: Any, fields: Mapping[str, str]) -> Sequence[FieldChange]:
        """Change list for a newly created entity: every populated field against null."""
        return [(field_name, None, getattr(entity, attr)) for attr, field_name in fields.items()]
