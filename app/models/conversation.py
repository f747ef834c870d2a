"""Conversation model: a continuity scope for one user in one channel (and optional thread)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import JSONBag, TimestampMixin


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class Conversation(Base, TimestampMixin):
    """
    One row per conversation.

    A threaded conversation is unique per (platform, user, channel, thread)
    whatever its status. Non-threaded conversations are resolved by recency (see
    ConversationResolver). message_count and last_activity_at are denormalized
    and only ever changed with atomic UPDATEs.
    """

    __tablename__ = "conversations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform = Column(String(32), nullable=False)
    channel = Column(String(255), nullable=False)
    thread = Column(String(255), nullable=True)
    status = Column(
        String(16), nullable=False, default=ConversationStatus.ACTIVE.value
    )
    title = Column(String(255), nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    archived_at = Column(DateTime(timezone=True), nullable=True)
    attributes = Column(JSONBag, nullable=False, default=dict)

    user = relationship("User", back_populates="conversations")
    queries = relationship(
        "UserQuery",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="UserQuery.created_at",
    )
    responses = relationship(
        "BotResponse",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="BotResponse.created_at",
    )


_threaded = Conversation.thread.isnot(None)

Index(
    "uq_conversations_thread",
    Conversation.platform,
    Conversation.user_id,
    Conversation.channel,
    Conversation.thread,
    unique=True,
    postgresql_where=_threaded,
    sqlite_where=_threaded,
)
Index(
    "ix_conversations_lookup",
    Conversation.platform,
    Conversation.user_id,
    Conversation.channel,
    Conversation.last_activity_at,
)
