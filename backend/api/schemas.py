"""Pydantic schemas for API request/response models."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from backend.config import settings
from backend.models.learning_record import LearningRecord
from backend.models.study_card import StudyCard
from backend.srs.ebbinghaus import status_for_mastery

# --- Users ---


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=255)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str | None


# --- Cards ---


class LearningProgressResponse(BaseModel):
    """A learner's progress on one card."""

    status: str  # new, learning, review, mastered
    review_count: int
    correct_count: int
    wrong_count: int
    mastery_level: int
    accuracy: int
    last_review_at: datetime
    next_review_at: datetime

    @classmethod
    def from_record(cls, record: LearningRecord) -> "LearningProgressResponse":
        return cls(
            status=status_for_mastery(record.mastery_level).value,
            review_count=record.view_count,
            correct_count=record.correct_count,
            wrong_count=record.wrong_count,
            mastery_level=record.mastery_level,
            accuracy=record.accuracy,
            last_review_at=record.last_viewed_at,
            next_review_at=record.next_review_at,
        )


class CardCreateRequest(BaseModel):
    """Request to create a card by hand."""

    user_id: int = Field(gt=0)
    title: str = Field(min_length=1, max_length=200)
    subject: str = Field(default="general", max_length=100)
    core_point: str = Field(min_length=1)
    confusion_point: str | None = None
    example: str | None = None
    difficulty: int = Field(default=3, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)


class CardGenerateRequest(BaseModel):
    """Request to generate a card from study material."""

    user_id: int = Field(gt=0)
    text: str = Field(min_length=1, max_length=settings.max_generation_input_chars)
    subject: str | None = None


class CardResponse(BaseModel):
    id: int
    title: str
    subject: str
    core_point: str
    confusion_point: str | None
    example: str | None
    difficulty: int
    tags: list[str]
    sketch_prompt: str | None
    created_at: datetime
    progress: LearningProgressResponse | None = None

    @classmethod
    def from_card(cls, card: StudyCard, record: LearningRecord | None = None) -> "CardResponse":
        return cls(
            id=card.id,
            title=card.title,
            subject=card.subject,
            core_point=card.core_point,
            confusion_point=card.confusion_point,
            example=card.example,
            difficulty=card.difficulty,
            tags=card.tag_list,
            sketch_prompt=card.sketch_prompt,
            created_at=card.created_at,
            progress=LearningProgressResponse.from_record(record) if record else None,
        )


class CardListResponse(BaseModel):
    cards: list[CardResponse]
    page: int
    limit: int
    total: int
    total_pages: int


# --- Review ---


class ReviewRequest(BaseModel):
    """A single review outcome submitted by the client."""

    user_id: int
    card_id: int
    difficulty: str  # again, hard, normal, easy
    is_correct: bool = True
    time_spent: int = 0  # seconds
    event_id: str | None = None  # client key for safe retries


class ReviewResponse(BaseModel):
    card_id: int
    progress: LearningProgressResponse
    next_interval_hours: float
    duplicate: bool


class PreviewOption(BaseModel):
    difficulty: str
    next_interval_hours: float
    new_mastery_level: int
    next_review_at: datetime


class PreviewResponse(BaseModel):
    """What each difficulty button would schedule for a card."""

    card_id: int
    options: list[PreviewOption]


# --- Stats ---


class UserStatsResponse(BaseModel):
    """Card counts by mastery bucket."""

    total_cards: int
    new_cards: int
    learning_cards: int
    review_cards: int
    mastered_cards: int
    due_cards: int
    today_reviewed: int


class DueCardsResponse(BaseModel):
    due_cards: list[CardResponse]
    stats: UserStatsResponse


class DailyActivityResponse(BaseModel):
    day: date
    review_count: int
    correct_count: int


class RecentActivityResponse(BaseModel):
    id: int
    card_id: int
    card_title: str
    subject: str
    difficulty: str
    is_correct: bool
    time_spent: int
    reviewed_at: datetime


class DashboardResponse(BaseModel):
    """Overall learning statistics for a learner."""

    learning: UserStatsResponse
    daily_stats: list[DailyActivityResponse]
    recent_activity: list[RecentActivityResponse]


class ReminderResponse(BaseModel):
    should_remind: bool
    due_count: int
    message: str | None = None
