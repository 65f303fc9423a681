"""API routes for learner statistics and dashboard data."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from backend.api.dependencies import get_store
from backend.api.schemas import (
    DailyActivityResponse,
    DashboardResponse,
    RecentActivityResponse,
    ReminderResponse,
    UserStatsResponse,
)
from backend.config import utcnow
from backend.srs.stats import (
    check_review_reminder,
    get_daily_activity,
    get_recent_activity,
    get_user_stats,
)
from backend.srs.store import LearningRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/{user_id}", response_model=DashboardResponse)
async def get_learner_stats(
    user_id: int,
    days: int = Query(default=7, ge=1, le=90),
    store: LearningRecordStore = Depends(get_store),
) -> DashboardResponse:
    """Get mastery buckets, daily activity and recent reviews for a learner."""
    now = utcnow()
    stats = await get_user_stats(store, user_id, now=now)
    daily = await get_daily_activity(store, user_id, days=days, now=now)
    recent = await get_recent_activity(store, user_id)

    return DashboardResponse(
        learning=UserStatsResponse(**asdict(stats)),
        daily_stats=[
            DailyActivityResponse(
                day=d.day,
                review_count=d.review_count,
                correct_count=d.correct_count,
            )
            for d in daily
        ],
        recent_activity=[
            RecentActivityResponse(
                id=entry.id,
                card_id=entry.card_id,
                card_title=entry.card.title,
                subject=entry.card.subject,
                difficulty=entry.difficulty,
                is_correct=entry.is_correct,
                time_spent=entry.time_spent,
                reviewed_at=entry.session_date,
            )
            for entry in recent
        ],
    )


@router.get("/{user_id}/reminder", response_model=ReminderResponse)
async def get_reminder(
    user_id: int,
    store: LearningRecordStore = Depends(get_store),
) -> ReminderResponse:
    """Check whether now is a good moment to nudge the learner to review."""
    check = await check_review_reminder(store, user_id)
    return ReminderResponse(**asdict(check))
