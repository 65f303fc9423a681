"""API routes for the review queue and recording review outcomes."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from backend.api.dependencies import get_recorder, get_store
from backend.api.schemas import (
    CardResponse,
    DueCardsResponse,
    LearningProgressResponse,
    PreviewOption,
    PreviewResponse,
    ReviewRequest,
    ReviewResponse,
    UserStatsResponse,
)
from backend.config import utcnow
from backend.srs.ebbinghaus import current_interval_hours, preview_intervals
from backend.srs.queue import get_due_cards
from backend.srs.recorder import ReviewRecorder, require_card, require_user
from backend.srs.stats import get_user_stats
from backend.srs.store import LearningRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


@router.get("/due", response_model=DueCardsResponse)
async def due_cards(
    user_id: int,
    limit: int | None = None,
    store: LearningRecordStore = Depends(get_store),
) -> DueCardsResponse:
    """Get the learner's review queue together with their dashboard counts."""
    now = utcnow()
    queue = await get_due_cards(store, user_id, limit=limit, now=now)
    stats = await get_user_stats(store, user_id, now=now)
    return DueCardsResponse(
        due_cards=[CardResponse.from_card(r.card, r) for r in queue.records],
        stats=UserStatsResponse(**asdict(stats)),
    )


@router.post("", response_model=ReviewResponse)
async def record_review(
    request: ReviewRequest,
    store: LearningRecordStore = Depends(get_store),
    recorder: ReviewRecorder = Depends(get_recorder),
) -> ReviewResponse:
    """Record how the learner did on a card and reschedule it."""
    await require_user(store, request.user_id)
    await require_card(store, request.card_id)

    result = await recorder.record_review(
        store,
        user_id=request.user_id,
        card_id=request.card_id,
        difficulty=request.difficulty,
        is_correct=request.is_correct,
        time_spent_seconds=request.time_spent,
        event_id=request.event_id,
    )
    return ReviewResponse(
        card_id=request.card_id,
        progress=LearningProgressResponse.from_record(result.record),
        next_interval_hours=result.next_interval_hours,
        duplicate=result.duplicate,
    )


@router.get("/preview/{card_id}", response_model=PreviewResponse)
async def preview(
    card_id: int,
    user_id: int = Query(gt=0),
    store: LearningRecordStore = Depends(get_store),
) -> PreviewResponse:
    """Show when the card would come back for each difficulty rating."""
    await require_card(store, card_id)
    record = await store.find_learning_record(user_id, card_id)
    now = utcnow()

    if record is None:
        options = preview_intervals(0.0, 0, 0, now)
    else:
        options = preview_intervals(
            current_interval_hours(record), record.mastery_level, record.view_count, now
        )

    return PreviewResponse(
        card_id=card_id,
        options=[
            PreviewOption(
                difficulty=difficulty.value,
                next_interval_hours=result.next_interval_hours,
                new_mastery_level=result.new_mastery_level,
                next_review_at=result.next_review_at,
            )
            for difficulty, result in options.items()
        ],
    )
