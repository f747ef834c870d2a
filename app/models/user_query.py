"""UserQuery model: one row per normalized inbound message."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import JSONBag


class UserQuery(Base):
    """
    Inbound message owned by a conversation.

    Immutable after creation except for ``status``. ``is_placeholder`` marks
    synthetic queries created by the backfill to own orphaned responses.
    """

    __tablename__ = "user_queries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(Text, nullable=False, default="")
    external_message_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="received")
    is_placeholder = Column(Boolean, nullable=False, default=False)
    attributes = Column(JSONBag, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    conversation = relationship("Conversation", back_populates="queries")
    responses = relationship(
        "BotResponse",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="BotResponse.created_at",
    )


_has_external_id = UserQuery.external_message_id.isnot(None)

Index(
    "uq_user_queries_conversation_external_message",
    UserQuery.conversation_id,
    UserQuery.external_message_id,
    unique=True,
    postgresql_where=_has_external_id,
    sqlite_where=_has_external_id,
)
Index(
    "ix_user_queries_conversation_created",
    UserQuery.conversation_id,
    UserQuery.created_at,
)
