"""Enums for the meeting request workflow - the valid statuses and capabilities."""
from enum import Enum


class RequestStatus(str, Enum):
    """The six statuses a MeetingRequest can be in. No other statuses are allowed."""
    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    CONFIRMED = "Confirmed"
    ANNOUNCED = "Announced"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: str) -> "RequestStatus":
        """Case-insensitive lookup by value. Raises ValueError for unknown statuses."""
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ValueError(f"Unknown status: {value}")


class Capability(str, Enum):
    """Reviewer capabilities that gate transitions."""
    APPROVE = "approve"
    CONFIRM = "confirm"
    ANNOUNCE = "announce"
    CANCEL = "cancel"
