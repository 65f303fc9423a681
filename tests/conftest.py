"""Shared fixtures: an isolated in-memory database per test."""

import os

# Point the app-wide engine at memory before anything imports backend.config
os.environ.setdefault("FLASHCARD_SRS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import Awaitable, Callable  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.database import enable_sqlite_foreign_keys, make_sessionmaker  # noqa: E402
from backend.models import Base, LearningRecord, StudyCard, User  # noqa: E402
from backend.srs.store import LearningRecordStore  # noqa: E402

NOW = datetime(2024, 3, 15, 12, 0, 0)


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def store(db: AsyncSession) -> LearningRecordStore:
    return LearningRecordStore(db)


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    user = User(username="alice", email="alice@example.com")
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def make_card(db: AsyncSession, user: User) -> Callable[..., Awaitable[StudyCard]]:
    """Factory for cards owned by ``user`` (not enrolled)."""
    counter = 0

    async def _make(**fields) -> StudyCard:
        nonlocal counter
        counter += 1
        card = StudyCard(
            owner_id=fields.pop("owner_id", user.id),
            title=fields.pop("title", f"Card {counter}"),
            subject=fields.pop("subject", "physics"),
            core_point=fields.pop("core_point", f"Point {counter}"),
            **fields,
        )
        db.add(card)
        await db.commit()
        return card

    return _make


@pytest_asyncio.fixture
async def make_record(db: AsyncSession, user: User, make_card) -> Callable[..., Awaitable[LearningRecord]]:
    """Factory for learning records on fresh cards, with explicit scheduling state."""

    async def _make(
        next_review_at: datetime | None = None,
        mastery_level: int = 0,
        correct_count: int = 0,
        wrong_count: int = 0,
        last_viewed_at: datetime | None = None,
        user_id: int | None = None,
    ) -> LearningRecord:
        card = await make_card()
        record = LearningRecord(
            user_id=user_id or user.id,
            card_id=card.id,
            view_count=correct_count + wrong_count,
            correct_count=correct_count,
            wrong_count=wrong_count,
            mastery_level=mastery_level,
            last_viewed_at=last_viewed_at or NOW - timedelta(days=2),
            next_review_at=next_review_at or NOW + timedelta(hours=1),
        )
        db.add(record)
        await db.commit()
        return record

    return _make


@pytest_asyncio.fixture
async def dispose_app_engine():
    """Drop pooled connections of the app-wide engine so the next test starts clean."""
    from backend.database import engine as app_engine

    yield app_engine
    await app_engine.dispose()
