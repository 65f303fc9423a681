"""Learner statistics for the dashboard and review reminders."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from backend.config import settings, start_of_local_day, to_local, utcnow
from backend.models.study_session import StudySession
from backend.srs.queue import get_due_cards, retry_store_reads
from backend.srs.recorder import validate_id
from backend.srs.store import LearningRecordStore

logger = logging.getLogger(__name__)


@dataclass
class UserStats:
    """Card counts per mastery bucket plus due and reviewed-today counts."""

    total_cards: int
    new_cards: int
    learning_cards: int
    review_cards: int
    mastered_cards: int
    due_cards: int
    today_reviewed: int


@dataclass
class DailyActivity:
    day: date
    review_count: int
    correct_count: int


@dataclass
class ReminderCheck:
    should_remind: bool
    due_count: int
    message: str | None = None


@retry_store_reads
async def get_user_stats(
    store: LearningRecordStore,
    user_id: int,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> UserStats:
    """Aggregate a learner's card counts.

    Bucket counts come from a single grouped query, and the total is their
    sum, so new + learning + review + mastered == total always holds.
    """
    validate_id("user_id", user_id)
    now = now or utcnow()
    day_start = start_of_local_day(now, tz_name or settings.local_timezone)

    buckets = await store.aggregate_by_mastery_bucket(user_id)
    due_cards = await store.count_due(user_id, now)
    today_reviewed = await store.count_since(user_id, day_start)

    return UserStats(
        total_cards=buckets.total,
        new_cards=buckets.new,
        learning_cards=buckets.learning,
        review_cards=buckets.review,
        mastered_cards=buckets.mastered,
        due_cards=due_cards,
        today_reviewed=today_reviewed,
    )


@retry_store_reads
async def get_daily_activity(
    store: LearningRecordStore,
    user_id: int,
    days: int = 7,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> list[DailyActivity]:
    """Reviews and correct answers per local day, oldest day first, including empty days."""
    validate_id("user_id", user_id)
    now = now or utcnow()
    tz_name = tz_name or settings.local_timezone
    today_start = start_of_local_day(now, tz_name)
    since = start_of_local_day(today_start - timedelta(days=days - 1), tz_name)
    today = to_local(now, tz_name).date()

    per_day: dict[date, DailyActivity] = {}
    for offset in range(days):
        day = today - timedelta(days=offset)
        per_day[day] = DailyActivity(day=day, review_count=0, correct_count=0)

    for entry in await store.session_entries_since(user_id, since):
        bucket = per_day.get(to_local(entry.session_date, tz_name).date())
        if bucket is None:
            continue
        bucket.review_count += 1
        if entry.is_correct:
            bucket.correct_count += 1

    return [per_day[day] for day in sorted(per_day)]


@retry_store_reads
async def get_recent_activity(
    store: LearningRecordStore,
    user_id: int,
    limit: int = 20,
) -> list[StudySession]:
    """Most recent session log entries, newest first, with their cards loaded."""
    validate_id("user_id", user_id)
    return await store.recent_activity(user_id, limit)


async def check_review_reminder(
    store: LearningRecordStore,
    user_id: int,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> ReminderCheck:
    """Decide whether to nudge the learner to use a spare moment for reviews.

    Reminders fire only in the first few minutes of the configured reminder
    hours (local time) and only when something is due.
    """
    now = now or utcnow()
    local_now = to_local(now, tz_name or settings.local_timezone)
    in_window = (
        local_now.hour in settings.reminder_hours
        and local_now.minute < settings.reminder_window_minutes
    )
    if not in_window:
        return ReminderCheck(should_remind=False, due_count=0)

    queue = await get_due_cards(store, user_id, limit=settings.reminder_batch_size, now=now)
    if queue.total == 0:
        return ReminderCheck(should_remind=False, due_count=0)

    logger.info("Reminding user %d about %d due cards", user_id, queue.total)
    return ReminderCheck(
        should_remind=True,
        due_count=queue.total,
        message=f"You have {queue.total} cards waiting for review. A quick session now will help them stick!",
    )
