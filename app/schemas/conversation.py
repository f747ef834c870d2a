"""Pydantic schemas for conversations and their messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class UserRead(BaseModel):
    id: UUID
    platform: str
    platform_user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    language_code: Optional[str] = None
    is_bot: bool = False
    last_seen_at: datetime
    attributes: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class ConversationRead(BaseModel):
    """Conversation for API responses."""

    id: UUID
    user_id: UUID
    platform: str
    channel: str
    thread: Optional[str] = None
    status: str
    title: Optional[str] = None
    message_count: int
    last_activity_at: datetime
    archived_at: Optional[datetime] = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReactionRead(BaseModel):
    id: UUID
    response_id: UUID
    user_id: Optional[UUID] = None
    label: str
    glyph: Optional[str] = None
    created_at: datetime
    removed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class QueryRead(BaseModel):
    id: UUID
    conversation_id: UUID
    user_id: UUID
    content: str
    external_message_id: Optional[str] = None
    status: str
    is_placeholder: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class ResponseRead(BaseModel):
    id: UUID
    query_id: UUID
    conversation_id: UUID
    content: str
    external_message_id: Optional[str] = None
    model_used: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    latency_ms: Optional[int] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    status: str
    fallback_used: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageRead(BaseModel):
    """One entry of the chronological conversation timeline."""

    role: Literal["user", "assistant"]
    id: UUID
    content: str
    created_at: datetime
    query_id: Optional[UUID] = None
    external_message_id: Optional[str] = None
    is_placeholder: bool = False
    fallback_used: bool = False
    error_message: Optional[str] = None
    reactions: list[ReactionRead] = Field(default_factory=list)


class SentimentBreakdown(BaseModel):
    positive: int = 0
    negative: int = 0
    neutral: int = 0


class ConversationStats(BaseModel):
    """Message and active reaction counts of one conversation."""

    conversation_id: UUID
    query_count: int = 0
    placeholder_query_count: int = 0
    response_count: int = 0
    reaction_count: int = 0
    sentiment: SentimentBreakdown = Field(default_factory=SentimentBreakdown)


class UserStats(BaseModel):
    """Totals across every conversation a user owns, whatever its status."""

    user_id: UUID
    total_conversations: int = 0
    total_queries: int = 0
    total_responses: int = 0
    total_reactions: int = 0
    sentiment: SentimentBreakdown = Field(default_factory=SentimentBreakdown)
