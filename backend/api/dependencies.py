"""Shared FastAPI dependencies."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.card_generator import CardGenerator
from backend.database import get_session
from backend.llm_client import get_llm_client
from backend.srs.recorder import ReviewRecorder
from backend.srs.store import LearningRecordStore


async def get_store(db: AsyncSession = Depends(get_session)) -> LearningRecordStore:
    return LearningRecordStore(db)


def get_recorder(request: Request) -> ReviewRecorder:
    """The app-wide recorder, so per-card locks are shared across requests."""
    return request.app.state.recorder


def get_card_generator() -> CardGenerator:
    return CardGenerator(get_llm_client())
