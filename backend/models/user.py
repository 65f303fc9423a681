from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    cards: Mapped[list["StudyCard"]] = relationship(back_populates="owner")  # type: ignore[name-defined] # noqa: F821
    learning_records: Mapped[list["LearningRecord"]] = relationship(back_populates="user")  # type: ignore[name-defined] # noqa: F821
