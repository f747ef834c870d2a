"""
Conversation resolution: (platform, user, channel, thread?) -> Conversation.

Resolution is an ordered list of named strategies; the first one that returns
a conversation wins, and ``create`` always does.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import ConstraintViolationError
from app.models.conversation import Conversation, ConversationStatus
from app.schemas.attributes import Platform, merge_attributes
from app.utils.db.upsert import insert_for
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationKey:
    platform: str
    user_id: UUID
    channel: str
    thread: Optional[str]
    at: datetime


ResolveStrategy = Callable[
    [Session, ConversationKey, Optional[datetime]], Optional[Conversation]
]


def _non_threaded(key: ConversationKey):
    return (
        Conversation.platform == key.platform,
        Conversation.user_id == key.user_id,
        Conversation.channel == key.channel,
        Conversation.thread.is_(None),
    )


def exact_match(
    db: Session, key: ConversationKey, not_before: Optional[datetime]
) -> Optional[Conversation]:
    """
    Conversation with the identical tuple; a null thread matches null only.

    A thread owns exactly one conversation whatever its status; non-threaded
    matches must be active.
    """
    if key.thread is not None:
        stmt = select(Conversation).where(
            Conversation.platform == key.platform,
            Conversation.user_id == key.user_id,
            Conversation.channel == key.channel,
            Conversation.thread == key.thread,
        )
        return db.execute(stmt).scalars().first()

    stmt = select(Conversation).where(
        *_non_threaded(key),
        Conversation.status == ConversationStatus.ACTIVE.value,
    )
    if not_before is not None:
        stmt = stmt.where(Conversation.last_activity_at >= not_before)
    candidates = db.execute(stmt.limit(2)).scalars().all()
    # More than one candidate is left to the recency heuristic
    if len(candidates) == 1:
        return candidates[0]
    return None


def recent_activity(
    db: Session, key: ConversationKey, not_before: Optional[datetime]
) -> Optional[Conversation]:
    """Most recently active non-archived, non-threaded conversation (thread absent only)."""
    if key.thread is not None:
        return None
    stmt = (
        select(Conversation)
        .where(
            *_non_threaded(key),
            Conversation.status.notin_(
                [ConversationStatus.ARCHIVED.value, ConversationStatus.DELETED.value]
            ),
        )
        .order_by(Conversation.last_activity_at.desc(), Conversation.created_at.desc())
    )
    if not_before is not None:
        stmt = stmt.where(Conversation.last_activity_at >= not_before)
    candidates = db.execute(stmt.limit(2)).scalars().all()
    if not candidates:
        return None
    conversation = candidates[0]
    if len(candidates) > 1:
        logger.info(
            "Ambiguous continuity for %s:%s in channel %s, picked %s by recency",
            key.platform,
            key.user_id,
            key.channel,
            conversation.id,
        )
        conversation.attributes = merge_attributes(
            conversation.attributes, {"continuity": "recency"}
        )
    return conversation


DEFAULT_STRATEGIES: List[Tuple[str, ResolveStrategy]] = [
    ("exact_match", exact_match),
    ("recent_activity", recent_activity),
]


class ConversationResolver:
    """Finds or creates the conversation a new message belongs to."""

    def __init__(
        self,
        db: Session,
        continuity_window: Optional[timedelta] = None,
        autocommit: bool = True,
        strategies: Optional[List[Tuple[str, ResolveStrategy]]] = None,
    ) -> None:
        self.db = db
        self.autocommit = autocommit
        if continuity_window is None:
            minutes = get_settings().conversation_continuity_window_minutes
            continuity_window = timedelta(minutes=minutes) if minutes else None
        self.continuity_window = continuity_window
        self.strategies = strategies or DEFAULT_STRATEGIES

    def resolve(
        self,
        platform: Platform | str,
        user_id: UUID,
        channel: str,
        thread: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Conversation:
        key = ConversationKey(
            platform=Platform(platform).value,
            user_id=user_id,
            channel=channel,
            thread=thread or None,
            at=ensure_utc(at) or datetime.now(timezone.utc),
        )
        not_before = key.at - self.continuity_window if self.continuity_window else None

        for name, strategy in self.strategies:
            conversation = strategy(self.db, key, not_before)
            if conversation is not None:
                logger.debug("Conversation %s resolved by %s", conversation.id, name)
                self._touch(conversation, key.at)
                self._finish()
                return conversation

        conversation = self._create(key)
        self._finish()
        return conversation

    def _touch(self, conversation: Conversation, at: datetime) -> None:
        self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(last_activity_at=at)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()

    def _create(self, key: ConversationKey) -> Conversation:
        values = {
            "id": uuid.uuid4(),
            "platform": key.platform,
            "user_id": key.user_id,
            "channel": key.channel,
            "thread": key.thread,
            "status": ConversationStatus.ACTIVE.value,
            "message_count": 0,
            "last_activity_at": key.at,
            "attributes": {},
        }
        if key.thread is None:
            conversation = Conversation(**values)
            self.db.add(conversation)
            self.db.flush()
            logger.info("Created conversation %s (no thread)", conversation.id)
            return conversation

        stmt = (
            insert_for(self.db, Conversation)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=["platform", "user_id", "channel", "thread"],
                index_where=Conversation.thread.isnot(None),
            )
            .returning(Conversation.id)
        )
        inserted_id = self.db.execute(stmt).scalar_one_or_none()
        if inserted_id is not None:
            logger.info("Created conversation %s (thread %s)", inserted_id, key.thread)
            return self.db.get(Conversation, inserted_id)
        # Lost a concurrent create for the same thread
        existing = exact_match(self.db, key, None)
        if existing is None:
            raise ConstraintViolationError(
                f"Conversation insert conflicted but no row for thread {key.thread}"
            )
        self._touch(existing, key.at)
        return existing

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()
