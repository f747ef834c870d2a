"""Schemas for replaying a legacy flat message log."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.attributes import Platform


class LegacyMessage(BaseModel):
    """One row of the legacy flat message log."""

    legacy_id: str
    legacy_conversation_id: str
    kind: Literal["query", "response"]
    content: str = ""
    created_at: datetime
    platform: Platform = Platform.SLACK
    platform_user_id: str
    channel: str
    thread: Optional[str] = None
    external_message_id: Optional[str] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        # Legacy rows used user_query / bot_response
        aliases = {"user_query": "query", "bot_response": "response"}
        return aliases.get(value, value)


class BackfillReport(BaseModel):
    conversations: int = 0
    users: int = 0
    queries: int = 0
    responses: int = 0
    placeholders: int = 0
    fallbacks: int = 0
    skipped: int = 0
    strategies: dict[str, int] = Field(default_factory=dict)
