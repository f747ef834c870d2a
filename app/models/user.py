"""User model: one row per (platform, platform_user_id) identity."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import JSONBag, TimestampMixin


class User(Base, TimestampMixin):
    """Stable internal identity for an external platform account. Never hard-deleted."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("platform", "platform_user_id", name="uq_users_platform_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    platform = Column(String(32), nullable=False)
    platform_user_id = Column(String(255), nullable=False)
    username = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    language_code = Column(String(16), nullable=True, default="en")
    timezone = Column(String(64), nullable=True)
    is_bot = Column(Boolean, nullable=False, default=False)
    last_seen_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    attributes = Column(JSONBag, nullable=False, default=dict)

    conversations = relationship(
        "Conversation",
        back_populates="user",
        cascade="all, delete-orphan",
    )
