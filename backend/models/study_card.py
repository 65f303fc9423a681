"""Flashcard content produced by a learner or the generation service."""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class StudyCard(Base, TimestampMixin):
    """A flashcard: one exam point with its common confusion and an example."""

    __tablename__ = "study_cards"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(100), nullable=False, default="general")
    core_point: Mapped[str] = mapped_column(Text, nullable=False)
    confusion_point: Mapped[str | None] = mapped_column(Text, nullable=True)
    example: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=3)  # 1-5
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)  # comma separated
    sketch_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner: Mapped["User"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
    learning_records: Mapped[list["LearningRecord"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="card", cascade="all, delete-orphan", passive_deletes=True
    )
    session_entries: Mapped[list["StudySession"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="card", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]
