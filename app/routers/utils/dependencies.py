from functools import lru_cache
from uuid import UUID

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from app.adapters.base import ChatPlatform
from app.adapters.telegram import TelegramAdapter
from app.config import get_settings
from app.db import get_db
from app.models.conversation import Conversation
from app.schemas.attributes import Platform
from app.services.conversation_service import ConversationService
from app.services.event_deduplicator import EventDeduplicator, get_event_deduplicator
from app.workers.llm import CompletionProvider, build_llm_runner_from_env


def get_conversation_by_id(
    conversation_id: UUID,
    db: Session = Depends(get_db),
) -> Conversation:
    """FastAPI dependency to get a conversation by ID."""
    conversation = ConversationService(db).get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@lru_cache(maxsize=1)
def get_completion_provider() -> CompletionProvider:
    """FastAPI dependency for the AI provider; built once per process."""
    return build_llm_runner_from_env()


def get_deduplicator() -> EventDeduplicator:
    return get_event_deduplicator()


def get_platform_registry() -> dict[Platform, ChatPlatform]:
    """Build adapter registry from config. Only enabled adapters are included."""
    registry: dict[Platform, ChatPlatform] = {}
    settings = get_settings()
    if settings.telegram_enabled and settings.telegram_bot_token:
        registry[Platform.TELEGRAM] = TelegramAdapter(
            bot_token=settings.telegram_bot_token,
            webhook_secret=settings.telegram_webhook_secret,
            timeout=settings.platform_timeout_seconds,
        )
    return registry
