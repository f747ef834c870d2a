"""Conversations API: list, get, timeline, stats, archive, restore, delete."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.conversation import Conversation, ConversationStatus
from app.routers.utils.dependencies import get_conversation_by_id
from app.schemas.attributes import Platform
from app.schemas.conversation import ConversationRead, ConversationStats, MessageRead
from app.services.conversation_service import ConversationService

conversations_router = APIRouter(prefix="/conversations", tags=["Conversation"])


@conversations_router.get("", response_model=Page[ConversationRead])
def list_conversations(
    params: Params = Depends(),
    platform: Optional[Platform] = Query(None),
    status: Optional[ConversationStatus] = Query(None),
    user_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """List conversations, most recently active first."""
    filters = {
        "platform": platform.value if platform else None,
        "status": status.value if status else None,
        "user_id": user_id,
    }
    query = ConversationService(db).search_query(filters)
    return paginate(query, params=params)


@conversations_router.get("/{conversation_id}", response_model=ConversationRead)
def get_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
) -> ConversationRead:
    """Get a conversation by ID."""
    return ConversationRead.model_validate(conversation)


@conversations_router.get(
    "/{conversation_id}/messages", response_model=List[MessageRead]
)
def list_conversation_messages(
    limit: int = Query(100, ge=1, le=500),
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> List[MessageRead]:
    """Queries and responses of a conversation in chronological order."""
    return ConversationService(db).get_timeline(conversation.id, limit=limit)


@conversations_router.get(
    "/{conversation_id}/stats", response_model=ConversationStats
)
def get_conversation_stats(
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> ConversationStats:
    """Query, response and active reaction counts with a sentiment breakdown."""
    return ConversationService(db).get_stats(conversation.id)


@conversations_router.post(
    "/{conversation_id}/archive", response_model=ConversationRead
)
def archive_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Archive a conversation; its thread keeps linking to it."""
    archived = ConversationService(db).archive(conversation.id)
    return ConversationRead.model_validate(archived)


@conversations_router.post(
    "/{conversation_id}/restore", response_model=ConversationRead
)
def restore_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Re-activate an archived conversation."""
    restored = ConversationService(db).restore(conversation.id)
    return ConversationRead.model_validate(restored)


@conversations_router.delete("/{conversation_id}", response_model=ConversationRead)
def delete_conversation(
    conversation: Conversation = Depends(get_conversation_by_id),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Mark a conversation deleted. Rows are kept."""
    deleted = ConversationService(db).mark_deleted(conversation.id)
    return ConversationRead.model_validate(deleted)
