"""Review recording: one learner answer in, one updated learning record out.

Loads (or lazily creates) the learning record, recomputes mastery from the
running accuracy, picks the next interval from mastery thresholds, and writes
the record together with a session log entry in a single transaction.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from backend.config import settings, utcnow
from backend.errors import ConflictError, NotFoundError, ValidationError
from backend.models.learning_record import LearningRecord
from backend.models.study_card import StudyCard
from backend.models.user import User
from backend.srs.ebbinghaus import (
    INTERVAL_LADDER,
    Difficulty,
    current_interval_hours,
    interval_for_mastery,
    mastery_from_counts,
)
from backend.srs.store import InitialState, LearningRecordStore, SessionEntry

logger = logging.getLogger(__name__)

MAX_EVENT_ID_LENGTH = 64

# Another writer (a second worker, the CLI) changed the record between our read
# and write, or created it first. The whole transaction is redone on a fresh read.
retry_on_conflict = retry(
    retry=retry_if_exception_type(ConflictError),
    stop=stop_after_attempt(settings.review_conflict_attempts),
    wait=wait_random_exponential(multiplier=0.02, max=0.5),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


@dataclass
class RecordedReview:
    """The learning record after a review, plus how it was scheduled."""

    record: LearningRecord
    next_interval_hours: float
    duplicate: bool = False


def initial_record_state(now: datetime) -> InitialState:
    """State of a card nobody has reviewed yet: due one ladder rung from now."""
    return InitialState(
        next_review_at=now + timedelta(hours=INTERVAL_LADDER[0]),
        last_viewed_at=now,
    )


def validate_id(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


async def require_user(store: LearningRecordStore, user_id: int) -> User:
    """Fetch a user or raise NotFoundError."""
    user = await store.get_user(validate_id("user_id", user_id))
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def require_card(store: LearningRecordStore, card_id: int) -> StudyCard:
    """Fetch a card or raise NotFoundError."""
    card = await store.get_card(validate_id("card_id", card_id))
    if card is None:
        raise NotFoundError(f"Card {card_id} not found")
    return card


async def enroll_card(
    store: LearningRecordStore,
    user_id: int,
    card_id: int,
    now: datetime | None = None,
) -> LearningRecord:
    """Create the initial learning record for a card if it has none yet.

    Does not commit; run it inside ``store.transaction()``.
    """
    now = now or utcnow()
    record = await store.find_learning_record(user_id, card_id)
    if record is not None:
        return record
    record = await store.create_learning_record(user_id, card_id, initial_record_state(now))
    logger.info("Enrolled card %d for user %d", card_id, user_id)
    return record


class ReviewRecorder:
    """Applies review outcomes to learning records.

    Reviews of the same (user, card) pair are serialized through a per-pair
    lock so two concurrent requests cannot both read the same counters. The
    lock only covers this process; writers in other processes are caught by
    the record's version column and the loser retries. On databases that
    support it the row is also locked with SELECT ... FOR UPDATE.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[tuple[int, int], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: int, card_id: int) -> asyncio.Lock:
        key = (user_id, card_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def record_review(
        self,
        store: LearningRecordStore,
        user_id: int,
        card_id: int,
        difficulty: Difficulty | str,
        is_correct: bool,
        time_spent_seconds: int = 0,
        event_id: str | None = None,
        now: datetime | None = None,
    ) -> RecordedReview:
        """Record one review event.

        Args:
            store: Store bound to the request's database session.
            user_id: The reviewing learner.
            card_id: The reviewed card. Callers check it exists first.
            difficulty: The learner's difficulty rating, logged as given.
            is_correct: Whether the answer was right; drives mastery.
            time_spent_seconds: Time spent on the card.
            event_id: Optional client key; a repeated key is not counted twice.
            now: Review time (defaults to utcnow).

        Returns:
            RecordedReview with the persisted record.
        """
        validate_id("user_id", user_id)
        validate_id("card_id", card_id)
        difficulty = Difficulty.parse(difficulty)
        if not isinstance(is_correct, bool):
            raise ValidationError(f"is_correct must be a boolean, got {is_correct!r}")
        if isinstance(time_spent_seconds, bool) or not isinstance(time_spent_seconds, int) or time_spent_seconds < 0:
            raise ValidationError(f"time_spent_seconds must be >= 0, got {time_spent_seconds!r}")
        if event_id is not None and not 0 < len(event_id) <= MAX_EVENT_ID_LENGTH:
            raise ValidationError(f"event_id must be 1-{MAX_EVENT_ID_LENGTH} characters")
        now = now or utcnow()

        async with self._lock_for(user_id, card_id):
            return await self._apply_review(
                store, user_id, card_id, difficulty, is_correct, time_spent_seconds, event_id, now
            )

    @retry_on_conflict
    async def _apply_review(
        self,
        store: LearningRecordStore,
        user_id: int,
        card_id: int,
        difficulty: Difficulty,
        is_correct: bool,
        time_spent_seconds: int,
        event_id: str | None,
        now: datetime,
    ) -> RecordedReview:
        """Read, update and log in one transaction.

        The update is guarded by the record's version column, so a write based
        on counters another process has since changed raises ConflictError and
        the attempt is retried from a fresh read.
        """
        async with store.transaction():
            if event_id is not None:
                duplicate = await self._replay_duplicate(store, user_id, card_id, event_id)
                if duplicate is not None:
                    return duplicate

            record = await store.find_learning_record(user_id, card_id, for_update=True)
            if record is None:
                record = await store.create_learning_record(
                    user_id, card_id, initial_record_state(now)
                )

            correct_count = record.correct_count + (1 if is_correct else 0)
            wrong_count = record.wrong_count + (0 if is_correct else 1)
            mastery_level = mastery_from_counts(correct_count, wrong_count)
            interval_hours = interval_for_mastery(mastery_level)

            record = await store.update_learning_record(
                record.id,
                {
                    "view_count": record.view_count + 1,
                    "correct_count": correct_count,
                    "wrong_count": wrong_count,
                    "mastery_level": mastery_level,
                    "last_viewed_at": now,
                    "next_review_at": now + timedelta(hours=interval_hours),
                },
            )
            await store.append_session_entry(
                SessionEntry(
                    user_id=user_id,
                    card_id=card_id,
                    difficulty=difficulty.value,
                    is_correct=is_correct,
                    time_spent=time_spent_seconds,
                    session_date=now,
                    event_id=event_id,
                )
            )

        logger.info(
            "Recorded review user=%d card=%d correct=%s mastery=%d next_in=%dh",
            user_id,
            card_id,
            is_correct,
            mastery_level,
            interval_hours,
        )
        return RecordedReview(record=record, next_interval_hours=float(interval_hours))

    async def _replay_duplicate(
        self,
        store: LearningRecordStore,
        user_id: int,
        card_id: int,
        event_id: str,
    ) -> RecordedReview | None:
        entry = await store.find_session_entry_by_event(event_id)
        if entry is None:
            return None
        if entry.user_id != user_id or entry.card_id != card_id:
            raise ValidationError(f"event_id {event_id!r} already used for a different review")
        record = await store.find_learning_record(user_id, card_id)
        if record is None:
            raise NotFoundError(f"No learning record for user {user_id} card {card_id}")
        logger.warning("Ignoring duplicate review event %s for card %d", event_id, card_id)
        return RecordedReview(
            record=record,
            next_interval_hours=current_interval_hours(record),
            duplicate=True,
        )
