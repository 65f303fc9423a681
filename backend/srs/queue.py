"""Due-card selection for review sessions.

A card is due when its next review time has passed and it is not yet fully
mastered. The longest-overdue cards come first; among cards due at the same
moment, the ones answered correctly least often surface first.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings, utcnow
from backend.errors import StoreUnavailableError, ValidationError
from backend.models.learning_record import LearningRecord
from backend.srs.recorder import validate_id
from backend.srs.store import DUE_ORDER, LearningRecordStore

logger = logging.getLogger(__name__)

# Reads are safe to repeat, so transient store failures are retried here.
retry_store_reads = retry(
    retry=retry_if_exception_type(StoreUnavailableError),
    stop=stop_after_attempt(settings.store_retry_attempts),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    reraise=True,
)


@dataclass
class DueQueue:
    """A bounded, ordered page of due learning records."""

    records: list[LearningRecord] = field(default_factory=list)
    limit: int = 0

    @property
    def total(self) -> int:
        return len(self.records)


def normalize_limit(limit: int | None) -> int:
    """Apply the default page size and reject non-positive or oversized limits."""
    if limit is None:
        return settings.due_cards_default_limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError(f"limit must be a positive integer, got {limit!r}")
    return min(limit, settings.due_cards_max_limit)


@retry_store_reads
async def get_due_cards(
    store: LearningRecordStore,
    user_id: int,
    limit: int | None = None,
    now: datetime | None = None,
) -> DueQueue:
    """Return the learner's due cards, most overdue first.

    Args:
        store: Store bound to a database session.
        user_id: The learner to build the queue for.
        limit: Maximum number of records (defaults to the configured page size).
        now: Current time (defaults to utcnow).

    Returns:
        A DueQueue whose records have their card content loaded.
    """
    validate_id("user_id", user_id)
    limit = normalize_limit(limit)
    now = now or utcnow()

    records = await store.query_due_records(user_id, now, limit, order_by=DUE_ORDER)
    logger.info("Built due queue for user %d: %d cards (limit %d)", user_id, len(records), limit)
    return DueQueue(records=records, limit=limit)
