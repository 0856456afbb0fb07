"""Reference number generation - 5-digit, zero-padded, unique across all requests."""
import random
from typing import Callable, Optional

import structlog
from sqlalchemy.orm import Session

from app.models.domain import MeetingRequest

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 10


def random_candidate() -> str:
    return f"{random.randint(0, 99999):05d}"


def generate_reference_number(
    db: Session,
    candidate_factory: Callable[[], str] = random_candidate,
    max_attempts: int = MAX_ATTEMPTS
) -> Optional[str]:
    """
    Pick a random unused reference number.

    Returns None when every attempt collides; the caller leaves the field
    unset rather than failing the create.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = candidate_factory()
        taken = db.query(MeetingRequest.id).filter(
            MeetingRequest.reference_number == candidate
        ).first()
        if taken is None:
            return candidate
        logger.debug("reference_number_collision", candidate=candidate, attempt=attempt)

    logger.warning("reference_number_exhausted", attempts=max_attempts)
    return None
