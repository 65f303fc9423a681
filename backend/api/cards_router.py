"""API routes for creating, generating, listing and deleting flashcards."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from backend.api.dependencies import get_card_generator, get_store
from backend.api.schemas import (
    CardCreateRequest,
    CardGenerateRequest,
    CardListResponse,
    CardResponse,
)
from backend.card_generator import CardDraft, CardGenerator
from backend.errors import NotFoundError, ValidationError
from backend.models.study_card import StudyCard
from backend.srs.ebbinghaus import ReviewStatus
from backend.srs.recorder import enroll_card, require_card
from backend.srs.store import LearningRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])


async def _save_card(store: LearningRecordStore, user_id: int, draft: CardDraft) -> CardResponse:
    """Persist a card and enroll its owner in one transaction."""
    async with store.transaction():
        if await store.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        card = StudyCard(
            owner_id=user_id,
            title=draft.title,
            subject=draft.subject,
            core_point=draft.core_point,
            confusion_point=draft.confusion_point,
            example=draft.example,
            difficulty=draft.difficulty,
            tags=",".join(draft.tags) or None,
            sketch_prompt=draft.sketch_prompt,
        )
        await store.add(card)
        record = await enroll_card(store, user_id, card.id)
    logger.info("Saved card %d for user %d", card.id, user_id)
    return CardResponse.from_card(card, record)


@router.post("", response_model=CardResponse, status_code=201)
async def create_card(
    request: CardCreateRequest,
    store: LearningRecordStore = Depends(get_store),
) -> CardResponse:
    """Create a card by hand and schedule its first review."""
    draft = CardDraft(
        title=request.title.strip(),
        subject=request.subject.strip() or "general",
        core_point=request.core_point.strip(),
        confusion_point=request.confusion_point,
        example=request.example,
        difficulty=request.difficulty,
        tags=[t.strip() for t in request.tags if t.strip()],
    )
    return await _save_card(store, request.user_id, draft)


@router.post("/generate", response_model=CardResponse, status_code=201)
async def generate_card(
    request: CardGenerateRequest,
    store: LearningRecordStore = Depends(get_store),
    generator: CardGenerator = Depends(get_card_generator),
) -> CardResponse:
    """Generate a card from study material with the LLM and save it."""
    if await store.get_user(request.user_id) is None:
        raise NotFoundError(f"User {request.user_id} not found")
    draft = await run_in_threadpool(generator.generate, request.text, request.subject)
    return await _save_card(store, request.user_id, draft)


@router.get("", response_model=CardListResponse)
async def list_cards(
    user_id: int = Query(gt=0),
    subject: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    store: LearningRecordStore = Depends(get_store),
) -> CardListResponse:
    """List the learner's cards, optionally filtered by subject or mastery bucket."""
    review_status = None
    if status:
        try:
            review_status = ReviewStatus(status.lower())
        except ValueError:
            raise ValidationError(f"Unknown status: {status!r}") from None

    rows, total = await store.list_cards_with_progress(
        user_id,
        offset=(page - 1) * limit,
        limit=limit,
        subject=subject,
        status=review_status,
    )
    return CardListResponse(
        cards=[CardResponse.from_card(card, record) for card, record in rows],
        page=page,
        limit=limit,
        total=total,
        total_pages=(total + limit - 1) // limit,
    )


@router.get("/{card_id}", response_model=CardResponse)
async def get_card(
    card_id: int,
    user_id: int = Query(gt=0),
    store: LearningRecordStore = Depends(get_store),
) -> CardResponse:
    """Get a card with the learner's progress on it."""
    card = await require_card(store, card_id)
    record = await store.find_learning_record(user_id, card_id)
    return CardResponse.from_card(card, record)


@router.delete("/{card_id}")
async def delete_card(
    card_id: int,
    user_id: int = Query(gt=0),
    store: LearningRecordStore = Depends(get_store),
) -> dict[str, str]:
    """Delete a card the learner owns, along with all review history for it."""
    async with store.transaction():
        card = await require_card(store, card_id)
        if card.owner_id != user_id:
            # Do not reveal cards owned by someone else
            raise NotFoundError(f"Card {card_id} not found")
        await store.delete_card(card)
    logger.info("Deleted card %d for user %d", card_id, user_id)
    return {"status": "deleted"}
