"""BotResponse model: one row per outbound generated reply, always owned by a query."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import JSONBag


class BotResponse(Base):
    """Outbound reply. ``query_id`` is mandatory; ``fallback_used`` flags rows linked by last resort."""

    __tablename__ = "bot_responses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    query_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("user_queries.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(Text, nullable=False, default="")
    external_message_id = Column(String(255), nullable=True, index=True)
    model_used = Column(String(128), nullable=True)
    prompt_tokens = Column(Integer, nullable=True)
    completion_tokens = Column(Integer, nullable=True)
    total_tokens = Column(Integer, nullable=True)
    latency_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    error_code = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default="sent")
    fallback_used = Column(Boolean, nullable=False, default=False)
    attributes = Column(JSONBag, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    query = relationship("UserQuery", back_populates="responses")
    conversation = relationship("Conversation", back_populates="responses")
    reactions = relationship(
        "Reaction",
        back_populates="response",
        cascade="all, delete-orphan",
        order_by="Reaction.created_at",
    )


Index(
    "ix_bot_responses_conversation_created",
    BotResponse.conversation_id,
    BotResponse.created_at,
)

_has_external_id = BotResponse.external_message_id.isnot(None)

Index(
    "uq_bot_responses_conversation_external_message",
    BotResponse.conversation_id,
    BotResponse.external_message_id,
    unique=True,
    postgresql_where=_has_external_id,
    sqlite_where=_has_external_id,
)
