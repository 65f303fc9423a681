"""Tests for due-card selection and learner statistics."""

import random
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from backend.config import settings
from backend.errors import StoreUnavailableError, ValidationError
from backend.models.user import User
from backend.srs.queue import get_due_cards, normalize_limit
from backend.srs.recorder import ReviewRecorder
from backend.srs.stats import (
    check_review_reminder,
    get_daily_activity,
    get_recent_activity,
    get_user_stats,
)

NOW = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def other_user(db):
    async def _make() -> User:
        bob = User(username="bob")
        db.add(bob)
        await db.commit()
        return bob

    return _make


# --- Due queue ---


class TestDueQueue:
    @pytest.mark.asyncio
    async def test_most_overdue_first_future_excluded(self, store, user, make_record) -> None:
        later = await make_record(next_review_at=NOW - timedelta(hours=1), correct_count=1, mastery_level=50, wrong_count=1)
        earlier = await make_record(next_review_at=NOW - timedelta(hours=2), correct_count=5, mastery_level=83, wrong_count=1)
        await make_record(next_review_at=NOW + timedelta(hours=1))

        queue = await get_due_cards(store, user.id, now=NOW)
        assert [r.id for r in queue.records] == [earlier.id, later.id]
        assert queue.total == 2
        assert queue.records[0].card.title

    @pytest.mark.asyncio
    async def test_due_exactly_now_is_included(self, store, user, make_record) -> None:
        record = await make_record(next_review_at=NOW)
        queue = await get_due_cards(store, user.id, now=NOW)
        assert [r.id for r in queue.records] == [record.id]

    @pytest.mark.asyncio
    async def test_weakest_first_on_tie(self, store, user, make_record) -> None:
        due_at = NOW - timedelta(hours=3)
        strong = await make_record(next_review_at=due_at, correct_count=3, mastery_level=75, wrong_count=1)
        weak = await make_record(next_review_at=due_at, correct_count=1, mastery_level=25, wrong_count=3)

        queue = await get_due_cards(store, user.id, now=NOW)
        assert [r.id for r in queue.records] == [weak.id, strong.id]

    @pytest.mark.asyncio
    async def test_fully_mastered_never_due(self, store, user, make_record) -> None:
        await make_record(next_review_at=NOW - timedelta(days=30), correct_count=4, mastery_level=100)
        queue = await get_due_cards(store, user.id, now=NOW)
        assert queue.records == []

    @pytest.mark.asyncio
    async def test_limit_bounds_result(self, store, user, make_record) -> None:
        for hours in range(1, 6):
            await make_record(next_review_at=NOW - timedelta(hours=hours))

        queue = await get_due_cards(store, user.id, limit=3, now=NOW)
        assert len(queue.records) == 3
        assert queue.limit == 3
        times = [r.next_review_at for r in queue.records]
        assert times == sorted(times)

    @pytest.mark.asyncio
    async def test_other_users_records_excluded(self, store, user, make_record, other_user) -> None:
        bob = await other_user()
        await make_record(next_review_at=NOW - timedelta(hours=1), user_id=bob.id)
        mine = await make_record(next_review_at=NOW - timedelta(hours=1))

        queue = await get_due_cards(store, user.id, now=NOW)
        assert [r.id for r in queue.records] == [mine.id]
        assert all(r.user_id == user.id for r in queue.records)

    @pytest.mark.asyncio
    async def test_no_records_is_empty_not_error(self, store, user) -> None:
        queue = await get_due_cards(store, user.id, now=NOW)
        assert queue.records == []

    @pytest.mark.asyncio
    async def test_invalid_limit_rejected(self, store, user) -> None:
        with pytest.raises(ValidationError):
            await get_due_cards(store, user.id, limit=0, now=NOW)
        with pytest.raises(ValidationError):
            await get_due_cards(store, user.id, limit=-4, now=NOW)

    def test_limit_defaults_and_clamps(self) -> None:
        assert normalize_limit(None) == settings.due_cards_default_limit
        assert normalize_limit(5) == 5
        assert normalize_limit(10_000) == settings.due_cards_max_limit

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self) -> None:
        store = AsyncMock()
        store.query_due_records.side_effect = [StoreUnavailableError("locked"), []]

        queue = await get_due_cards(store, 1, now=NOW)
        assert queue.records == []
        assert store.query_due_records.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_failure_surfaces(self) -> None:
        store = AsyncMock()
        store.query_due_records.side_effect = StoreUnavailableError("down")

        with pytest.raises(StoreUnavailableError):
            await get_due_cards(store, 1, now=NOW)
        assert store.query_due_records.await_count == settings.store_retry_attempts


# --- Statistics ---


class TestUserStats:
    @pytest.mark.asyncio
    async def test_no_records_all_zero(self, store, user) -> None:
        stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        assert stats.total_cards == 0
        assert stats.new_cards == stats.learning_cards == stats.review_cards == stats.mastered_cards == 0
        assert stats.due_cards == 0
        assert stats.today_reviewed == 0

    @pytest.mark.asyncio
    async def test_bucket_boundaries(self, store, user, make_record) -> None:
        for mastery in (0, 1, 39, 40, 79, 80, 100):
            await make_record(mastery_level=mastery)

        stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        assert stats.new_cards == 1
        assert stats.learning_cards == 2
        assert stats.review_cards == 2
        assert stats.mastered_cards == 2
        assert stats.total_cards == 7

    @pytest.mark.asyncio
    async def test_buckets_partition_total(self, store, user, make_record) -> None:
        rng = random.Random(11)
        for _ in range(20):
            await make_record(mastery_level=rng.randint(0, 100))

        stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        assert stats.total_cards == 20
        assert (
            stats.new_cards + stats.learning_cards + stats.review_cards + stats.mastered_cards
            == stats.total_cards
        )

    @pytest.mark.asyncio
    async def test_due_count_matches_queue_rule(self, store, user, make_record) -> None:
        await make_record(next_review_at=NOW - timedelta(hours=1), mastery_level=20)
        await make_record(next_review_at=NOW - timedelta(hours=1), mastery_level=100, correct_count=2)
        await make_record(next_review_at=NOW + timedelta(hours=1))

        stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        assert stats.due_cards == 1

    @pytest.mark.asyncio
    async def test_today_reviewed_counts_records_viewed_today(self, store, user, make_record) -> None:
        await make_record(last_viewed_at=NOW - timedelta(hours=3), correct_count=1, mastery_level=100)
        await make_record(last_viewed_at=NOW.replace(hour=0), wrong_count=1)
        await make_record(last_viewed_at=NOW - timedelta(days=1), correct_count=1, mastery_level=100)
        # enrolled today but never reviewed
        await make_record(last_viewed_at=NOW)

        stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        assert stats.today_reviewed == 2

    @pytest.mark.asyncio
    async def test_today_follows_local_timezone(self, store, user, make_record) -> None:
        # 01:00 UTC on the 15th is still the 14th in New York
        await make_record(last_viewed_at=datetime(2024, 3, 15, 1, 0), correct_count=1, mastery_level=100)

        utc_stats = await get_user_stats(store, user.id, now=NOW, tz_name="UTC")
        ny_stats = await get_user_stats(store, user.id, now=NOW, tz_name="America/New_York")
        assert utc_stats.today_reviewed == 1
        assert ny_stats.today_reviewed == 0

    @pytest.mark.asyncio
    async def test_invalid_user_id(self, store) -> None:
        with pytest.raises(ValidationError):
            await get_user_stats(store, -1, now=NOW)


class TestActivity:
    @pytest.mark.asyncio
    async def test_daily_activity_includes_empty_days(self, store, user, make_card) -> None:
        recorder = ReviewRecorder()
        card = await make_card()
        user_id, card_id = user.id, card.id
        await recorder.record_review(store, user_id, card_id, "normal", True, now=NOW - timedelta(hours=1))
        await recorder.record_review(store, user_id, card_id, "hard", False, now=NOW - timedelta(hours=2))
        await recorder.record_review(store, user_id, card_id, "easy", True, now=NOW - timedelta(days=2))
        await recorder.record_review(store, user_id, card_id, "easy", True, now=NOW - timedelta(days=10))

        activity = await get_daily_activity(store, user_id, days=3, now=NOW, tz_name="UTC")
        assert [a.day.isoformat() for a in activity] == ["2024-03-13", "2024-03-14", "2024-03-15"]
        assert [(a.review_count, a.correct_count) for a in activity] == [(1, 1), (0, 0), (2, 1)]

    @pytest.mark.asyncio
    async def test_recent_activity_newest_first(self, store, user, make_card) -> None:
        recorder = ReviewRecorder()
        first = await make_card(title="Ohm's law")
        second = await make_card(title="Kirchhoff")
        user_id, first_id, second_id = user.id, first.id, second.id
        await recorder.record_review(store, user_id, first_id, "normal", True, now=NOW - timedelta(hours=2))
        await recorder.record_review(store, user_id, second_id, "again", False, now=NOW - timedelta(hours=1))

        entries = await get_recent_activity(store, user_id, limit=5)
        assert [e.card_id for e in entries] == [second_id, first_id]
        assert entries[0].card.title == "Kirchhoff"
        assert entries[0].is_correct is False


class TestReminder:
    @pytest.mark.asyncio
    async def test_reminds_inside_window_when_due(self, store, user, make_record) -> None:
        at = datetime(2024, 3, 15, 10, 5)
        await make_record(next_review_at=at - timedelta(hours=1))
        await make_record(next_review_at=at - timedelta(hours=2))

        check = await check_review_reminder(store, user.id, now=at, tz_name="UTC")
        assert check.should_remind
        assert check.due_count == 2
        assert "2 cards" in check.message

    @pytest.mark.asyncio
    async def test_silent_outside_window(self, store, user, make_record) -> None:
        await make_record(next_review_at=NOW - timedelta(hours=1))
        for at in (datetime(2024, 3, 15, 10, 45), datetime(2024, 3, 15, 12, 0)):
            check = await check_review_reminder(store, user.id, now=at, tz_name="UTC")
            assert not check.should_remind
            assert check.message is None

    @pytest.mark.asyncio
    async def test_silent_when_nothing_due(self, store, user, make_record) -> None:
        at = datetime(2024, 3, 15, 15, 10)
        await make_record(next_review_at=at + timedelta(hours=4))

        check = await check_review_reminder(store, user.id, now=at, tz_name="UTC")
        assert not check.should_remind
        assert check.due_count == 0
