"""Attach and detach user reactions on bot responses."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.reaction import Reaction
from app.schemas.attributes import Platform
from app.utils.db.upsert import insert_for

logger = logging.getLogger(__name__)


class ReactionOp(str, Enum):
    ADD = "add"
    REMOVE = "remove"


POSITIVE_REACTIONS = frozenset(
    {
        "+1", "thumbsup", "heart", "heart_eyes", "fire", "star", "clap",
        "raised_hands", "100", "white_check_mark", "ok_hand", "muscle",
        "sparkles", "tada",
        "👍", "❤", "❤️", "😍", "🔥", "⭐", "👏", "🙌", "💯", "✅", "👌", "💪", "✨", "🎉",
    }
)
NEGATIVE_REACTIONS = frozenset(
    {
        "-1", "thumbsdown", "x", "angry", "rage", "disappointed", "confused",
        "thinking_face", "face_with_raised_eyebrow",
        "👎", "❌", "😠", "😡", "😞", "😕", "🤔", "🤨",
    }
)


def classify_sentiment(label: str, glyph: Optional[str] = None) -> str:
    for candidate in (label, glyph):
        if candidate in POSITIVE_REACTIONS:
            return "positive"
        if candidate in NEGATIVE_REACTIONS:
            return "negative"
    return "neutral"


class ReactionAttacher:
    def __init__(self, db: Session, autocommit: bool = True) -> None:
        self.db = db
        self.autocommit = autocommit

    def find_response(
        self, external_message_id: str, platform: Optional[Platform | str] = None
    ) -> Optional[BotResponse]:
        """Most recent response carrying the platform message id."""
        stmt = select(BotResponse).where(
            BotResponse.external_message_id == external_message_id
        )
        if platform is not None:
            stmt = stmt.join(
                Conversation, Conversation.id == BotResponse.conversation_id
            ).where(Conversation.platform == Platform(platform).value)
        stmt = stmt.order_by(BotResponse.created_at.desc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def apply(
        self,
        external_message_id: str,
        user_id: Optional[UUID],
        label: str,
        op: ReactionOp | str,
        glyph: Optional[str] = None,
        platform: Optional[Platform | str] = None,
    ) -> Optional[Reaction]:
        """
        Add or remove a reaction; repeated adds and removes converge.

        Returns the affected reaction, or None when the target response is
        unknown or there was nothing to remove.
        """
        op = ReactionOp(op)
        response = self.find_response(external_message_id, platform)
        if response is None:
            logger.info(
                "Dropping %s reaction %r: no response for message %s",
                op.value,
                label,
                external_message_id,
            )
            return None

        if op is ReactionOp.ADD:
            reaction = self._add(response.id, user_id, label, glyph)
        else:
            reaction = self._remove(response.id, user_id, label)
        self._finish()
        return reaction

    def active_reactions(self, response_id: UUID) -> List[Reaction]:
        return (
            self.db.query(Reaction)
            .filter(Reaction.response_id == response_id, Reaction.removed_at.is_(None))
            .order_by(Reaction.created_at.asc())
            .all()
        )

    def _active_match(
        self, response_id: UUID, user_id: Optional[UUID], label: str
    ) -> Optional[Reaction]:
        stmt = (
            select(Reaction)
            .where(
                Reaction.response_id == response_id,
                Reaction.label == label,
                Reaction.removed_at.is_(None),
            )
            .order_by(Reaction.created_at.desc())
            .limit(1)
        )
        if user_id is None:
            stmt = stmt.where(Reaction.user_id.is_(None))
        else:
            stmt = stmt.where(Reaction.user_id == user_id)
        return self.db.execute(stmt).scalars().first()

    def _add(
        self,
        response_id: UUID,
        user_id: Optional[UUID],
        label: str,
        glyph: Optional[str],
    ) -> Reaction:
        if user_id is None:
            # NULL user ids never conflict on the unique index
            existing = self._active_match(response_id, None, label)
            if existing is not None:
                return existing
        stmt = (
            insert_for(self.db, Reaction)
            .values(
                id=uuid.uuid4(),
                response_id=response_id,
                user_id=user_id,
                label=label,
                glyph=glyph,
                attributes={"sentiment": classify_sentiment(label, glyph)},
                created_at=datetime.now(timezone.utc),
                removed_at=None,
            )
            .on_conflict_do_nothing(
                index_elements=["response_id", "user_id", "label"],
                index_where=Reaction.removed_at.is_(None),
            )
            .returning(Reaction.id)
        )
        inserted_id = self.db.execute(stmt).scalar_one_or_none()
        if inserted_id is not None:
            return self.db.get(Reaction, inserted_id)
        existing = self._active_match(response_id, user_id, label)
        logger.debug("Reaction %r on %s already active", label, response_id)
        return existing

    def _remove(
        self, response_id: UUID, user_id: Optional[UUID], label: str
    ) -> Optional[Reaction]:
        reaction = self._active_match(response_id, user_id, label)
        if reaction is None:
            logger.debug("No active reaction %r on %s to remove", label, response_id)
            return None
        reaction.removed_at = datetime.now(timezone.utc)
        self.db.flush()
        return reaction

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()
