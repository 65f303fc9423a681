"""Per-(user, card) review state driving the forgetting-curve schedule."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class LearningRecord(Base):
    """Counters, mastery and next due time for one learner on one card."""

    __tablename__ = "learning_records"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_learning_record_user_card"),
        CheckConstraint("mastery_level BETWEEN 0 AND 100", name="ck_mastery_range"),
        CheckConstraint("correct_count + wrong_count = view_count", name="ck_outcome_tally"),
        Index("ix_learning_records_due", "user_id", "next_review_at", "correct_count"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    card_id: Mapped[int] = mapped_column(
        ForeignKey("study_cards.id", ondelete="CASCADE"), nullable=False
    )
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wrong_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mastery_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-100
    last_viewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    next_review_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # Bumped on every update; a write based on a stale read matches no row
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    user: Mapped["User"] = relationship(back_populates="learning_records")  # type: ignore[name-defined] # noqa: F821
    card: Mapped["StudyCard"] = relationship(back_populates="learning_records")  # type: ignore[name-defined] # noqa: F821

    @property
    def accuracy(self) -> int:
        """Rounded percentage of correct answers, 0 for unseen cards."""
        if self.view_count <= 0:
            return 0
        return round(self.correct_count / self.view_count * 100)
