"""Users API: per-user totals."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.conversation import UserStats
from app.services.conversation_service import ConversationService

users_router = APIRouter(prefix="/users", tags=["User"])


@users_router.get("/{user_id}/stats", response_model=UserStats)
def get_user_stats(user_id: UUID, db: Session = Depends(get_db)) -> UserStats:
    """Conversations, messages and reactions of a user across all conversations."""
    return ConversationService(db).get_user_stats(user_id)
