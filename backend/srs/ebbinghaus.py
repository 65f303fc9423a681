"""Forgetting-curve scheduling primitives.

Reviews are spaced along a fixed interval ladder modelled on the Ebbinghaus
forgetting curve: 1 hour, 8 hours, 1 day, 3 days, 1 week, 2 weeks, 1 month.

Two policies live here:
- ``calculate_next_review``: difficulty-driven. Given how the learner rated a
  card (Again/Hard/Normal/Easy) it moves along the ladder and nudges mastery.
  Pure and used for previews.
- ``mastery_from_counts`` + ``interval_for_mastery``: accuracy-driven. Mastery
  is the running percentage of correct answers, and the next interval is
  picked from mastery thresholds. This is what the review recorder persists.

Nothing in this module performs I/O or reads the clock; callers pass ``now``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from backend.errors import ValidationError

if TYPE_CHECKING:
    from backend.models.learning_record import LearningRecord

# Interval ladder in hours: 1h, 8h, 1d, 3d, 1wk, 2wk, 1mo
INTERVAL_LADDER: tuple[int, ...] = (1, 8, 24, 72, 168, 336, 720)

MIN_MASTERY = 0
MAX_MASTERY = 100

# Bucket boundaries on mastery level
LEARNING_THRESHOLD = 1
REVIEW_THRESHOLD = 40
MASTERED_THRESHOLD = 80

HARD_MULTIPLIER = 1.2
NORMAL_MULTIPLIER = 1.5
EASY_MULTIPLIER = 2.0


class Difficulty(Enum):
    """How hard the learner found the card on this review."""

    AGAIN = "again"
    HARD = "hard"
    NORMAL = "normal"
    EASY = "easy"

    @classmethod
    def parse(cls, value: Difficulty | str) -> Difficulty:
        """Coerce a raw value into a Difficulty, rejecting anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"Unknown difficulty: {value!r}")


class ReviewStatus(Enum):
    """Mastery bucket a card falls into."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of a difficulty-driven scheduling step."""

    next_interval_hours: float
    new_mastery_level: int
    next_review_at: datetime


def status_for_mastery(mastery_level: int) -> ReviewStatus:
    if mastery_level >= MASTERED_THRESHOLD:
        return ReviewStatus.MASTERED
    if mastery_level >= REVIEW_THRESHOLD:
        return ReviewStatus.REVIEW
    if mastery_level >= LEARNING_THRESHOLD:
        return ReviewStatus.LEARNING
    return ReviewStatus.NEW


def _validate_inputs(current_interval_hours: float, mastery_level: int, view_count: int) -> None:
    if current_interval_hours < 0:
        raise ValidationError(f"current_interval_hours must be >= 0, got {current_interval_hours}")
    if not MIN_MASTERY <= mastery_level <= MAX_MASTERY:
        raise ValidationError(f"mastery_level must be in [0, 100], got {mastery_level}")
    if view_count < 0:
        raise ValidationError(f"view_count must be >= 0, got {view_count}")


def calculate_next_review(
    difficulty: Difficulty | str,
    current_interval_hours: float,
    mastery_level: int,
    view_count: int,
    now: datetime,
) -> ScheduleResult:
    """Compute the next interval and mastery from a difficulty rating.

    Args:
        difficulty: How the learner rated the card.
        current_interval_hours: Interval that just elapsed; 0 on a first review.
        mastery_level: Current mastery, 0-100.
        view_count: Reviews seen so far, before this one.
        now: Reference time the absolute due date is derived from.

    Returns:
        ScheduleResult with a strictly positive interval and clamped mastery.
    """
    difficulty = Difficulty.parse(difficulty)
    _validate_inputs(current_interval_hours, mastery_level, view_count)

    first_rung = INTERVAL_LADDER[0]
    # A zero interval would stay zero under multipliers
    base = current_interval_hours if current_interval_hours > 0 else first_rung

    if difficulty is Difficulty.AGAIN:
        interval = float(first_rung)
        mastery = max(MIN_MASTERY, mastery_level - 20)
    elif difficulty is Difficulty.HARD:
        interval = max(float(first_rung), base * HARD_MULTIPLIER)
        mastery = max(MIN_MASTERY, mastery_level - 10)
    elif difficulty is Difficulty.NORMAL:
        if view_count < len(INTERVAL_LADDER):
            interval = float(INTERVAL_LADDER[view_count])
        else:
            interval = base * NORMAL_MULTIPLIER
        mastery = min(MAX_MASTERY, mastery_level + 10)
    else:
        interval = base * EASY_MULTIPLIER
        mastery = min(MAX_MASTERY, mastery_level + 20)

    return ScheduleResult(
        next_interval_hours=interval,
        new_mastery_level=mastery,
        next_review_at=now + timedelta(hours=interval),
    )


def preview_intervals(
    current_interval_hours: float,
    mastery_level: int,
    view_count: int,
    now: datetime,
) -> dict[Difficulty, ScheduleResult]:
    """Return what each difficulty button would schedule, keyed by difficulty."""
    return {
        difficulty: calculate_next_review(
            difficulty, current_interval_hours, mastery_level, view_count, now
        )
        for difficulty in Difficulty
    }


def mastery_from_counts(correct_count: int, wrong_count: int) -> int:
    """Running accuracy percentage, floored. 0 when nothing has been answered."""
    total = correct_count + wrong_count
    if total <= 0:
        return MIN_MASTERY
    return min(MAX_MASTERY, (100 * correct_count) // total)


def interval_for_mastery(mastery_level: int) -> int:
    """Pick the next interval in hours from accuracy-based mastery thresholds.

    >=80 climbs the ladder by mastery/15 (capped at the last rung),
    >=60 waits a day, >=40 eight hours, anything lower an hour.
    """
    if mastery_level >= MASTERED_THRESHOLD:
        return INTERVAL_LADDER[min(len(INTERVAL_LADDER) - 1, mastery_level // 15)]
    if mastery_level >= 60:
        return INTERVAL_LADDER[2]
    if mastery_level >= REVIEW_THRESHOLD:
        return INTERVAL_LADDER[1]
    return INTERVAL_LADDER[0]


def current_interval_hours(record: LearningRecord) -> float:
    """Hours between the last review and the scheduled next one.

    Never-reviewed records report 0 so the scheduler treats them as first reviews.
    """
    if record.view_count == 0:
        return 0.0
    seconds = (record.next_review_at - record.last_viewed_at).total_seconds()
    return max(0.0, seconds / 3600)
