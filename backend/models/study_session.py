from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class StudySession(Base):
    """Append-only log entry, one per recorded review."""

    __tablename__ = "study_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(
        ForeignKey("study_cards.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)  # client de-dup key
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False)  # again, hard, normal, easy
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds
    session_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    card: Mapped["StudyCard"] = relationship(back_populates="session_entries")  # type: ignore[name-defined] # noqa: F821
