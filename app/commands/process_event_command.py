"""
Command to process one normalized inbound event.

Messages: dedup, resolve identity and conversation, persist the query, post a
status message, generate the reply, persist the response and deliver it.
Reactions: dedup, resolve identity, attach or detach on the target response.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.adapters.base import ChatPlatform
from app.config import get_settings
from app.core.errors import TransientIOError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.user_query import UserQuery
from app.schemas.attributes import merge_attributes
from app.schemas.events import EventOutcome, EventType, Fingerprint, InboundEvent
from app.schemas.message import ResponseMeta
from app.services.conversation_resolver import ConversationResolver
from app.services.conversation_service import ConversationService
from app.services.event_deduplicator import (
    EventDeduplicator,
    get_event_deduplicator,
)
from app.services.identity_resolver import IdentityResolver
from app.services.message_linker import MessageLinker
from app.services.reaction_attacher import ReactionAttacher, ReactionOp
from app.workers.llm import CompletionProvider, build_llm_runner_from_env


class ProcessEventCommand:
    """
    Run an InboundEvent through the linkage pipeline.

    ``platform`` is the outbound side of the chat platform; when it is None the
    reply is generated and stored but not delivered.
    """

    def __init__(
        self,
        db: Session,
        platform: Optional[ChatPlatform] = None,
        completion: Optional[CompletionProvider] = None,
        deduplicator: Optional[EventDeduplicator] = None,
    ) -> None:
        self.db = db
        self.settings = get_settings()
        self.platform = platform
        self._completion = completion
        self.deduplicator = deduplicator or get_event_deduplicator()
        self.identity = IdentityResolver(db, autocommit=False)
        self.conversations = ConversationResolver(db, autocommit=False)
        self.linker = MessageLinker(db, autocommit=False)
        self.reactions = ReactionAttacher(db, autocommit=False)
        self.conversation_service = ConversationService(db)
        self.logger = logging.getLogger(__name__)

    @property
    def completion(self) -> CompletionProvider:
        if self._completion is None:
            self._completion = build_llm_runner_from_env()
        return self._completion

    async def execute(self, event: InboundEvent) -> EventOutcome:
        """
        Process one event.

        Returns:
            EventOutcome: ``duplicate`` when the fingerprint was seen inside the
                dedup horizon, ``ignored`` for bot senders and empty messages,
                ``dropped`` for reactions on unknown responses, ``processed``
                otherwise.
        """
        fingerprint = Fingerprint.from_event(event)
        if fingerprint is not None and self.deduplicator.seen(fingerprint):
            self.logger.info("Duplicate event %s dropped", fingerprint)
            return EventOutcome(status="duplicate")

        if event.is_bot:
            return EventOutcome(status="ignored", detail="bot sender")

        try:
            if event.is_reaction:
                return self._handle_reaction(event)
            return await self._handle_message(event)
        except Exception:
            self.db.rollback()
            # Let a redelivery retry the event
            if fingerprint is not None:
                self.deduplicator.forget(fingerprint)
            raise

    def _handle_reaction(self, event: InboundEvent) -> EventOutcome:
        user = self.identity.resolve(
            event.platform, event.external_user_id, event.user_attributes or None
        )
        op = (
            ReactionOp.ADD
            if event.event_type == EventType.REACTION_ADD
            else ReactionOp.REMOVE
        )
        reaction = self.reactions.apply(
            event.external_message_id,
            user.id,
            event.reaction_label,
            op,
            glyph=event.reaction_glyph,
            platform=event.platform,
        )
        self.db.commit()
        if reaction is None:
            return EventOutcome(status="dropped", detail="no matching reaction target")
        return EventOutcome(status="processed", reaction_id=str(reaction.id))

    async def _handle_message(self, event: InboundEvent) -> EventOutcome:
        text = (event.text or "").strip()
        if not text:
            return EventOutcome(status="ignored", detail="empty message")

        user_attrs = await self._user_attributes(event)
        user = self.identity.resolve(event.platform, event.external_user_id, user_attrs)
        conversation = self.conversations.resolve(
            event.platform, user.id, event.channel, thread=event.thread
        )
        query = self.linker.persist_query(
            conversation.id,
            user.id,
            text,
            external_message_id=event.external_message_id,
            attrs=event.attributes,
        )
        self.db.commit()
        if self._already_answered(query):
            # Same platform message stored earlier under a different fingerprint
            return EventOutcome(
                status="duplicate",
                conversation_id=str(conversation.id),
                query_id=str(query.id),
            )

        status_message_id = await self._send_status(event)
        reply, content, meta = await self._generate(conversation, query, text)

        query.status = "failed" if meta.failed else "answered"
        response = self.linker.persist_response(query.id, conversation.id, content, meta)
        self.db.commit()

        delivered_id, delivery_attrs = await self._deliver(
            event, reply, status_message_id
        )
        if delivered_id is not None:
            self.linker.record_response_delivery(response.id, delivered_id, delivery_attrs)
        elif delivery_attrs:
            self._record_delivery_failure(response, delivery_attrs)
        self.conversation_service.set_title_if_missing(conversation.id, text)
        self.db.commit()

        return EventOutcome(
            status="processed",
            conversation_id=str(conversation.id),
            query_id=str(query.id),
            response_id=str(response.id),
        )

    def _already_answered(self, query: UserQuery) -> bool:
        return (
            self.db.execute(
                select(BotResponse.id).where(BotResponse.query_id == query.id).limit(1)
            ).first()
            is not None
        )

    async def _user_attributes(self, event: InboundEvent) -> Optional[dict[str, Any]]:
        """Event-supplied attributes, enriched from the platform for first-seen users."""
        attrs = dict(event.user_attributes or {})
        if self.platform is None:
            return attrs or None
        if self.identity.get(event.platform, event.external_user_id) is not None:
            return attrs or None
        try:
            profile = await self.platform.fetch_user_profile(event.external_user_id)
        except TransientIOError as e:
            self.logger.warning(
                "Profile lookup for %s:%s failed: %s",
                event.platform.value,
                event.external_user_id,
                e,
            )
            return attrs or None
        return merge_attributes(profile, attrs) or None

    async def _send_status(self, event: InboundEvent) -> Optional[str]:
        if self.platform is None:
            return None
        try:
            return await self.platform.send_text(
                event.channel, self.settings.status_message_text, thread=event.thread
            )
        except TransientIOError as e:
            self.logger.warning("Status message to %s failed: %s", event.channel, e)
            return None

    async def _generate(
        self, conversation: Conversation, query: UserQuery, text: str
    ) -> tuple[str, str, ResponseMeta]:
        """Returns (text to deliver, content to store, metadata)."""
        history = self.conversation_service.get_history(
            conversation.id, limit=self.settings.history_limit, exclude_id=query.id
        )
        try:
            result = await self.completion.complete(text, history)
        except TransientIOError as e:
            self.logger.warning(
                "Reply generation for query %s failed: %s", query.id, e
            )
            meta = ResponseMeta(
                error_message=str(e), error_code=e.code, status="failed"
            )
            return self.settings.ai_failure_reply, "", meta

        meta = ResponseMeta(
            model_used=result.model,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            total_tokens=result.total_tokens,
            latency_ms=result.latency_ms,
        )
        return result.text, result.text, meta

    async def _deliver(
        self, event: InboundEvent, reply: str, status_message_id: Optional[str]
    ) -> tuple[Optional[str], dict[str, Any]]:
        """Edit the status message into the reply, falling back to a new message."""
        if self.platform is None:
            return None, {}
        if status_message_id is not None:
            if await self.platform.update_text(event.channel, status_message_id, reply):
                return status_message_id, {"delivery": "edited"}
        try:
            message_id = await self.platform.send_text(
                event.channel, reply, thread=event.thread
            )
        except TransientIOError as e:
            self.logger.warning("Reply delivery to %s failed: %s", event.channel, e)
            return None, {"delivery": "failed", "delivery_error": str(e)}
        return message_id, {"delivery": "sent"}

    def _record_delivery_failure(
        self, response: BotResponse, attrs: dict[str, Any]
    ) -> None:
        response.attributes = merge_attributes(response.attributes, attrs)
        self.db.flush()
