"""Reaction model: user feedback on a bot response. Removal is a soft delete."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import JSONBag


class Reaction(Base):
    """Active while ``removed_at`` is null; unique per (response, user, label) while active."""

    __tablename__ = "message_reactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    response_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("bot_responses.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Attribution only
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    label = Column(String(128), nullable=False)
    glyph = Column(String(32), nullable=True)
    attributes = Column(JSONBag, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    removed_at = Column(DateTime(timezone=True), nullable=True)

    response = relationship("BotResponse", back_populates="reactions")


_active = Reaction.removed_at.is_(None)

Index(
    "uq_message_reactions_active",
    Reaction.response_id,
    Reaction.user_id,
    Reaction.label,
    unique=True,
    postgresql_where=_active,
    sqlite_where=_active,
)
