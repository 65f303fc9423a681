"""Persistence for learning records and the study session log.

Every method maps low-level database failures to ``StoreUnavailableError`` so
callers only ever see the scheduling error taxonomy.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from backend.errors import ConflictError, NotFoundError, StoreUnavailableError
from backend.models.learning_record import LearningRecord
from backend.models.study_card import StudyCard
from backend.models.study_session import StudySession
from backend.models.user import User
from backend.srs.ebbinghaus import (
    LEARNING_THRESHOLD,
    MASTERED_THRESHOLD,
    MAX_MASTERY,
    REVIEW_THRESHOLD,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_ERRORS = (DBAPIError, PoolTimeoutError)

# Default due-queue ordering: longest-overdue first, then weakest first
DUE_ORDER = (LearningRecord.next_review_at.asc(), LearningRecord.correct_count.asc())


def _status_condition(status: ReviewStatus) -> Any:
    """SQL condition matching learning records in a mastery bucket."""
    mastery = LearningRecord.mastery_level
    if status is ReviewStatus.MASTERED:
        return mastery >= MASTERED_THRESHOLD
    if status is ReviewStatus.REVIEW:
        return and_(mastery >= REVIEW_THRESHOLD, mastery < MASTERED_THRESHOLD)
    if status is ReviewStatus.LEARNING:
        return and_(mastery >= LEARNING_THRESHOLD, mastery < REVIEW_THRESHOLD)
    return mastery < LEARNING_THRESHOLD


def _translate_errors(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    @functools.wraps(fn)
    async def wrapper(self: LearningRecordStore, *args: Any, **kwargs: Any) -> T:
        try:
            return await fn(self, *args, **kwargs)
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(f"{fn.__name__} conflicted with existing data") from exc
        except StaleDataError as exc:
            await self.session.rollback()
            raise ConflictError(f"{fn.__name__} lost a race with a concurrent update") from exc
        except STORE_ERRORS as exc:
            logger.warning("Store call %s failed: %s", fn.__name__, exc)
            # The session cannot be reused until the failed transaction is discarded
            await self.session.rollback()
            raise StoreUnavailableError(f"{fn.__name__} failed: {exc}") from exc

    return wrapper


@dataclass
class InitialState:
    """Field values for a freshly created learning record."""

    next_review_at: datetime
    last_viewed_at: datetime
    view_count: int = 0
    correct_count: int = 0
    wrong_count: int = 0
    mastery_level: int = 0


@dataclass
class SessionEntry:
    """One review event to append to the session log."""

    user_id: int
    card_id: int
    difficulty: str
    is_correct: bool
    time_spent: int
    session_date: datetime
    event_id: str | None = None


@dataclass
class BucketCounts:
    """Learning record counts per mastery bucket."""

    new: int = 0
    learning: int = 0
    review: int = 0
    mastered: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review + self.mastered


class LearningRecordStore:
    """Data access for the review scheduling core, bound to one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Commit everything done inside the block, or nothing at all."""
        try:
            yield
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError("transaction conflicted with existing data") from exc
        except StaleDataError as exc:
            await self.session.rollback()
            raise ConflictError("transaction lost a race with a concurrent update") from exc
        except STORE_ERRORS as exc:
            await self.session.rollback()
            raise StoreUnavailableError(f"transaction failed: {exc}") from exc
        except BaseException:
            await self.session.rollback()
            raise

    # --- Users and cards ---

    @_translate_errors
    async def get_user(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    @_translate_errors
    async def get_card(self, card_id: int) -> StudyCard | None:
        return await self.session.get(StudyCard, card_id)

    @_translate_errors
    async def add(self, obj: User | StudyCard) -> None:
        """Stage a new user or card and assign its id."""
        self.session.add(obj)
        await self.session.flush()

    @_translate_errors
    async def delete_card(self, card: StudyCard) -> None:
        """Delete a card; its learning records and log entries go with it."""
        await self.session.delete(card)
        await self.session.flush()

    @_translate_errors
    async def list_cards_with_progress(
        self,
        user_id: int,
        offset: int,
        limit: int,
        subject: str | None = None,
        status: ReviewStatus | None = None,
    ) -> tuple[list[tuple[StudyCard, LearningRecord | None]], int]:
        """Cards the user owns or studies, newest first, with the user's record if any."""
        conditions = [or_(StudyCard.owner_id == user_id, LearningRecord.id.is_not(None))]
        if subject:
            conditions.append(StudyCard.subject == subject)
        if status is not None:
            conditions.append(_status_condition(status))

        joined = select(StudyCard, LearningRecord).outerjoin(
            LearningRecord,
            and_(LearningRecord.card_id == StudyCard.id, LearningRecord.user_id == user_id),
        )
        stmt = (
            joined.where(*conditions)
            .order_by(StudyCard.created_at.desc(), StudyCard.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = [(card, record) for card, record in (await self.session.execute(stmt)).all()]

        count_stmt = select(func.count()).select_from(joined.where(*conditions).subquery())
        total = (await self.session.execute(count_stmt)).scalar() or 0
        return rows, total

    # --- Learning records ---

    @_translate_errors
    async def find_learning_record(
        self,
        user_id: int,
        card_id: int,
        for_update: bool = False,
    ) -> LearningRecord | None:
        """Return the record for (user, card), locking the row if asked."""
        stmt = select(LearningRecord).where(
            and_(LearningRecord.user_id == user_id, LearningRecord.card_id == card_id)
        )
        if for_update:
            # Refresh counters already in the identity map, or the update would
            # be computed from an old read
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @_translate_errors
    async def create_learning_record(
        self,
        user_id: int,
        card_id: int,
        initial_state: InitialState,
    ) -> LearningRecord:
        record = LearningRecord(
            user_id=user_id,
            card_id=card_id,
            view_count=initial_state.view_count,
            correct_count=initial_state.correct_count,
            wrong_count=initial_state.wrong_count,
            mastery_level=initial_state.mastery_level,
            last_viewed_at=initial_state.last_viewed_at,
            next_review_at=initial_state.next_review_at,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    @_translate_errors
    async def update_learning_record(self, record_id: int, fields: dict[str, Any]) -> LearningRecord:
        record = await self.session.get(LearningRecord, record_id)
        if record is None:
            raise NotFoundError(f"Learning record {record_id} not found")
        for name, value in fields.items():
            setattr(record, name, value)
        await self.session.flush()
        return record

    # --- Session log ---

    @_translate_errors
    async def append_session_entry(self, entry: SessionEntry) -> None:
        self.session.add(
            StudySession(
                user_id=entry.user_id,
                card_id=entry.card_id,
                event_id=entry.event_id,
                difficulty=entry.difficulty,
                is_correct=entry.is_correct,
                time_spent=entry.time_spent,
                session_date=entry.session_date,
            )
        )
        await self.session.flush()

    @_translate_errors
    async def find_session_entry_by_event(self, event_id: str) -> StudySession | None:
        stmt = select(StudySession).where(StudySession.event_id == event_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # --- Queries ---

    @staticmethod
    def _due_filter(user_id: int, now: datetime) -> Any:
        return and_(
            LearningRecord.user_id == user_id,
            LearningRecord.next_review_at <= now,
            LearningRecord.mastery_level < MAX_MASTERY,
        )

    @_translate_errors
    async def query_due_records(
        self,
        user_id: int,
        now: datetime,
        limit: int,
        order_by: tuple = DUE_ORDER,
    ) -> list[LearningRecord]:
        """Due records with their cards loaded, in ``order_by`` order."""
        stmt = (
            select(LearningRecord)
            .where(self._due_filter(user_id, now))
            .order_by(*order_by, LearningRecord.id.asc())
            .limit(limit)
            .options(selectinload(LearningRecord.card))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @_translate_errors
    async def count_due(self, user_id: int, now: datetime) -> int:
        stmt = select(func.count(LearningRecord.id)).where(self._due_filter(user_id, now))
        return (await self.session.execute(stmt)).scalar() or 0

    @_translate_errors
    async def aggregate_by_mastery_bucket(self, user_id: int) -> BucketCounts:
        """Count records per bucket in one grouped query so buckets always sum to the total."""
        bucket = case(
            (LearningRecord.mastery_level >= MASTERED_THRESHOLD, "mastered"),
            (LearningRecord.mastery_level >= REVIEW_THRESHOLD, "review"),
            (LearningRecord.mastery_level >= LEARNING_THRESHOLD, "learning"),
            else_="new",
        ).label("bucket")
        stmt = (
            select(bucket, func.count(LearningRecord.id))
            .where(LearningRecord.user_id == user_id)
            .group_by(bucket)
        )
        counts = BucketCounts()
        for name, count in (await self.session.execute(stmt)).all():
            setattr(counts, name, count)
        return counts

    @_translate_errors
    async def count_since(self, user_id: int, since: datetime) -> int:
        """Reviewed records last viewed at or after ``since``.

        Records with ``view_count == 0`` are skipped: enrollment stamps
        ``last_viewed_at`` without a review having happened.
        """
        stmt = select(func.count(LearningRecord.id)).where(
            and_(
                LearningRecord.user_id == user_id,
                LearningRecord.view_count > 0,
                LearningRecord.last_viewed_at >= since,
            )
        )
        return (await self.session.execute(stmt)).scalar() or 0

    @_translate_errors
    async def session_entries_since(self, user_id: int, since: datetime) -> list[StudySession]:
        stmt = (
            select(StudySession)
            .where(and_(StudySession.user_id == user_id, StudySession.session_date >= since))
            .order_by(StudySession.session_date.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @_translate_errors
    async def recent_activity(self, user_id: int, limit: int) -> list[StudySession]:
        stmt = (
            select(StudySession)
            .where(StudySession.user_id == user_id)
            .order_by(StudySession.session_date.desc(), StudySession.id.desc())
            .limit(limit)
            .options(selectinload(StudySession.card))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
