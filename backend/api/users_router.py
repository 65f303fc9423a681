"""API routes for learner accounts."""

import logging

from fastapi import APIRouter, Depends

from backend.api.dependencies import get_store
from backend.api.schemas import UserCreateRequest, UserResponse
from backend.models.user import User
from backend.srs.recorder import require_user
from backend.srs.store import LearningRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    request: UserCreateRequest,
    store: LearningRecordStore = Depends(get_store),
) -> UserResponse:
    """Register a learner. Authentication is handled elsewhere."""
    user = User(username=request.username.strip(), email=request.email)
    async with store.transaction():
        await store.add(user)
    logger.info("Created user %d (%s)", user.id, user.username)
    return UserResponse(id=user.id, username=user.username, email=user.email)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    store: LearningRecordStore = Depends(get_store),
) -> UserResponse:
    user = await require_user(store, user_id)
    return UserResponse(id=user.id, username=user.username, email=user.email)
