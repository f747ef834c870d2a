"""Conversation reads, stats and explicit status commands (archive, restore, delete)."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Query, Session

from app.core.errors import NotFoundError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation, ConversationStatus
from app.models.reaction import Reaction
from app.models.user import User
from app.models.user_query import UserQuery
from app.schemas.conversation import (
    ConversationStats,
    MessageRead,
    ReactionRead,
    SentimentBreakdown,
    UserStats,
)
from app.services.reaction_attacher import classify_sentiment
from app.utils.db.filtering import apply_filters
from app.utils.time import ensure_utc

TITLE_MAX_LENGTH = 80
SENTIMENTS = ("positive", "negative", "neutral")


class ConversationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .first()
        )

    def search_query(self, filters: Dict[str, Any]) -> Query[Conversation]:
        """Get a query for conversations with filters (for pagination)."""
        query = self.db.query(Conversation)
        query = apply_filters(query, Conversation, filters)
        return query.order_by(Conversation.last_activity_at.desc())

    def archive(self, conversation_id: UUID) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.status = ConversationStatus.ARCHIVED.value
        conversation.archived_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def restore(self, conversation_id: UUID) -> Conversation:
        """Re-activate an archived conversation."""
        conversation = self._require(conversation_id)
        conversation.status = ConversationStatus.ACTIVE.value
        conversation.archived_at = None
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def mark_deleted(self, conversation_id: UUID) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.status = ConversationStatus.DELETED.value
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def set_title_if_missing(self, conversation_id: UUID, text: str) -> None:
        conversation = self._require(conversation_id)
        title = " ".join((text or "").split())[:TITLE_MAX_LENGTH]
        if conversation.title or not title:
            return
        conversation.title = title
        self.db.commit()

    def get_timeline(self, conversation_id: UUID, limit: int = 100) -> List[MessageRead]:
        """Queries and responses of a conversation in chronological order."""
        queries = (
            self.db.query(UserQuery)
            .filter(UserQuery.conversation_id == conversation_id)
            .order_by(UserQuery.created_at.desc())
            .limit(limit)
            .all()
        )
        responses = (
            self.db.query(BotResponse)
            .filter(BotResponse.conversation_id == conversation_id)
            .order_by(BotResponse.created_at.desc())
            .limit(limit)
            .all()
        )
        reactions: Dict[UUID, List[ReactionRead]] = defaultdict(list)
        if responses:
            for reaction in (
                self.db.query(Reaction)
                .filter(
                    Reaction.response_id.in_([r.id for r in responses]),
                    Reaction.removed_at.is_(None),
                )
                .order_by(Reaction.created_at.asc())
            ):
                reactions[reaction.response_id].append(
                    ReactionRead.model_validate(reaction)
                )

        timeline: List[MessageRead] = [
            MessageRead(
                role="user",
                id=q.id,
                content=q.content,
                created_at=ensure_utc(q.created_at),
                external_message_id=q.external_message_id,
                is_placeholder=q.is_placeholder,
            )
            for q in queries
        ]
        timeline.extend(
            MessageRead(
                role="assistant",
                id=r.id,
                content=r.content,
                created_at=ensure_utc(r.created_at),
                query_id=r.query_id,
                external_message_id=r.external_message_id,
                fallback_used=r.fallback_used,
                error_message=r.error_message,
                reactions=reactions.get(r.id, []),
            )
            for r in responses
        )
        # A response sorts after its query when both share a timestamp
        timeline.sort(key=lambda m: (m.created_at, m.role == "assistant"))
        return timeline[-limit:]

    def get_history(
        self,
        conversation_id: UUID,
        limit: int = 10,
        exclude_id: Optional[UUID] = None,
    ) -> List[dict[str, str]]:
        """Recent {role, content} pairs for the AI prompt; placeholders and failed replies skipped."""
        history: List[dict[str, str]] = []
        for message in self.get_timeline(conversation_id, limit=limit + 1):
            if message.id == exclude_id:
                continue
            if message.is_placeholder or message.error_message:
                continue
            content = (message.content or "").strip()
            if content:
                history.append({"role": message.role, "content": content})
        return history[-limit:] if limit else []

    def get_stats(self, conversation_id: UUID) -> ConversationStats:
        """Query, response and active reaction counts for one conversation."""
        self._require(conversation_id)
        counts = self._tally(
            UserQuery.conversation_id == conversation_id,
            BotResponse.conversation_id == conversation_id,
        )
        return ConversationStats(conversation_id=conversation_id, **counts)

    def get_user_stats(self, user_id: UUID) -> UserStats:
        """Totals across every conversation the user owns, archived and deleted included."""
        if self.db.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        owned = select(Conversation.id).where(Conversation.user_id == user_id)
        conversations = (
            self.db.query(func.count(Conversation.id))
            .filter(Conversation.user_id == user_id)
            .scalar()
        )
        counts = self._tally(
            UserQuery.conversation_id.in_(owned),
            BotResponse.conversation_id.in_(owned),
        )
        return UserStats(
            user_id=user_id,
            total_conversations=conversations,
            total_queries=counts["query_count"],
            total_responses=counts["response_count"],
            total_reactions=counts["reaction_count"],
            sentiment=counts["sentiment"],
        )

    def _tally(self, query_scope, response_scope) -> Dict[str, Any]:
        queries, placeholders = (
            self.db.query(
                func.count(UserQuery.id),
                func.count(case((UserQuery.is_placeholder.is_(True), 1))),
            )
            .filter(query_scope)
            .one()
        )
        responses = (
            self.db.query(func.count(BotResponse.id)).filter(response_scope).scalar()
        )
        sentiment = SentimentBreakdown()
        reactions = (
            self.db.query(Reaction)
            .join(BotResponse, BotResponse.id == Reaction.response_id)
            .filter(response_scope, Reaction.removed_at.is_(None))
        )
        reaction_count = 0
        for reaction in reactions:
            reaction_count += 1
            label = (reaction.attributes or {}).get("sentiment")
            if label not in SENTIMENTS:
                # Rows stored without a sentiment are classified on read
                label = classify_sentiment(reaction.label, reaction.glyph)
            setattr(sentiment, label, getattr(sentiment, label) + 1)
        return {
            "query_count": queries or 0,
            "placeholder_query_count": placeholders or 0,
            "response_count": responses or 0,
            "reaction_count": reaction_count,
            "sentiment": sentiment,
        }

    def _require(self, conversation_id: UUID) -> Conversation:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation
