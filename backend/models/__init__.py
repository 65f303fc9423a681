"""SQLAlchemy ORM models for the flashcard SRS database."""

from backend.models.base import Base
from backend.models.learning_record import LearningRecord
from backend.models.study_card import StudyCard
from backend.models.study_session import StudySession
from backend.models.user import User

__all__ = ["Base", "LearningRecord", "StudyCard", "StudySession", "User"]
