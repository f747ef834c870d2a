"""
Persistence of queries and responses with their ownership links.

Every response is bound to exactly one query of the same conversation. Live
ingestion knows the query; backfill goes through ``link_orphan_response``.
Conversation counters are only changed with single atomic UPDATEs.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import ConstraintViolationError, NotFoundError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.user_query import UserQuery
from app.schemas.attributes import merge_attributes
from app.schemas.message import OrphanResponse, ResponseMeta
from app.services.link_strategies import (
    DEFAULT_LINK_STRATEGIES,
    FALLBACK_STRATEGIES,
    LinkContext,
    LinkStrategy,
)
from app.utils.db.upsert import insert_for
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)


class MessageLinker:
    def __init__(
        self,
        db: Session,
        autocommit: bool = True,
        strategies: Optional[List[Tuple[str, LinkStrategy]]] = None,
        placeholder_offset: Optional[timedelta] = None,
    ) -> None:
        self.db = db
        self.autocommit = autocommit
        self.strategies = strategies or DEFAULT_LINK_STRATEGIES
        if placeholder_offset is None:
            placeholder_offset = timedelta(
                seconds=get_settings().backfill_placeholder_offset_seconds
            )
        self.placeholder_offset = placeholder_offset

    def persist_query(
        self,
        conversation_id: UUID,
        user_id: UUID,
        content: str,
        external_message_id: Optional[str] = None,
        attrs: Optional[dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> UserQuery:
        """
        Store an inbound message.

        Idempotent on (conversation_id, external_message_id): a repeat returns
        the existing row and leaves the conversation counters alone.
        """
        self._require_conversation(conversation_id)
        created_at = ensure_utc(created_at) or datetime.now(timezone.utc)
        values = {
            "id": uuid.uuid4(),
            "conversation_id": conversation_id,
            "user_id": user_id,
            "content": content or "",
            "external_message_id": external_message_id,
            "status": "received",
            "is_placeholder": False,
            "attributes": dict(attrs or {}),
            "created_at": created_at,
        }

        if external_message_id is None:
            query = UserQuery(**values)
            self.db.add(query)
            self.db.flush()
        else:
            stmt = (
                insert_for(self.db, UserQuery)
                .values(**values)
                .on_conflict_do_nothing(
                    index_elements=["conversation_id", "external_message_id"],
                    index_where=UserQuery.external_message_id.isnot(None),
                )
                .returning(UserQuery.id)
            )
            inserted_id = self.db.execute(stmt).scalar_one_or_none()
            if inserted_id is None:
                existing = self.db.execute(
                    select(UserQuery).where(
                        UserQuery.conversation_id == conversation_id,
                        UserQuery.external_message_id == external_message_id,
                    )
                ).scalar_one()
                logger.debug(
                    "Query %s already stored as %s", external_message_id, existing.id
                )
                self._finish()
                return existing
            query = self.db.get(UserQuery, inserted_id)

        self._bump_counters(conversation_id, created_at)
        self._finish()
        return query

    def persist_response(
        self,
        query_id: UUID,
        conversation_id: UUID,
        content: str,
        meta: Optional[ResponseMeta] = None,
    ) -> BotResponse:
        """Store a generated reply for a known query of the same conversation."""
        query = self.db.get(UserQuery, query_id)
        if query is None:
            raise ConstraintViolationError(f"Query {query_id} does not exist")
        if query.conversation_id != conversation_id:
            raise ConstraintViolationError(
                f"Query {query_id} belongs to conversation {query.conversation_id}, "
                f"not {conversation_id}"
            )
        values = self._response_values(query_id, conversation_id, content, meta)
        response, created = self._insert_response(values)
        if created:
            self._bump_counters(conversation_id, values["created_at"])
        self._finish()
        return response

    def record_response_delivery(
        self,
        response_id: UUID,
        external_message_id: str,
        attrs: Optional[dict[str, Any]] = None,
    ) -> BotResponse:
        """Attach the platform message id once the reply has actually been delivered."""
        response = self.db.get(BotResponse, response_id)
        if response is None:
            raise NotFoundError(f"Response {response_id} not found")
        response.external_message_id = external_message_id
        if attrs:
            response.attributes = merge_attributes(response.attributes, attrs)
        self._finish()
        return response

    def link_orphan_response(
        self,
        conversation_id: UUID,
        orphan: OrphanResponse,
        siblings: Sequence[datetime] = (),
    ) -> BotResponse:
        """
        Store a replayed response whose query is unknown.

        The strategies run in order and the first query id returned wins.
        ``siblings`` are the timestamps of other responses in the same replay
        batch that may not be persisted yet.
        """
        conversation = self._require_conversation(conversation_id)
        created_at = ensure_utc(orphan.created_at)
        if orphan.meta.external_message_id is not None:
            existing = self.find_response(
                conversation_id, orphan.meta.external_message_id
            )
            if existing is not None:
                logger.debug(
                    "Response %s already stored as %s",
                    orphan.meta.external_message_id,
                    existing.id,
                )
                self._finish()
                return existing

        ctx = LinkContext(
            db=self.db,
            conversation_id=conversation_id,
            user_id=conversation.user_id,
            created_at=created_at,
            siblings=tuple(siblings),
            placeholder_offset=self.placeholder_offset,
        )

        query_id: Optional[UUID] = None
        strategy_name: Optional[str] = None
        for name, strategy in self.strategies:
            query_id = strategy(ctx)
            if query_id is not None:
                strategy_name = name
                break
        if query_id is None:
            raise ConstraintViolationError(
                f"No query could own the response at {created_at} "
                f"in conversation {conversation_id}"
            )

        meta = orphan.meta.model_copy(
            update={
                "created_at": created_at,
                "attributes": merge_attributes(
                    orphan.meta.attributes, {"link_strategy": strategy_name}
                ),
            }
        )
        values = self._response_values(query_id, conversation_id, orphan.content, meta)
        values["fallback_used"] = strategy_name in FALLBACK_STRATEGIES
        if values["fallback_used"]:
            logger.info(
                "Response at %s in conversation %s linked by %s",
                created_at,
                conversation_id,
                strategy_name,
            )
        response, created = self._insert_response(values)
        if created:
            self._bump_counters(conversation_id, created_at)
        self._finish()
        return response

    def find_response(
        self, conversation_id: UUID, external_message_id: str
    ) -> Optional[BotResponse]:
        return self.db.execute(
            select(BotResponse).where(
                BotResponse.conversation_id == conversation_id,
                BotResponse.external_message_id == external_message_id,
            )
        ).scalar_one_or_none()

    def _response_values(
        self,
        query_id: UUID,
        conversation_id: UUID,
        content: str,
        meta: Optional[ResponseMeta],
    ) -> dict[str, Any]:
        meta = meta or ResponseMeta()
        total_tokens = meta.total_tokens
        if total_tokens is None and (meta.prompt_tokens or meta.completion_tokens):
            total_tokens = (meta.prompt_tokens or 0) + (meta.completion_tokens or 0)
        return {
            "id": uuid.uuid4(),
            "query_id": query_id,
            "conversation_id": conversation_id,
            "content": content or "",
            "external_message_id": meta.external_message_id,
            "model_used": meta.model_used,
            "prompt_tokens": meta.prompt_tokens,
            "completion_tokens": meta.completion_tokens,
            "total_tokens": total_tokens,
            "latency_ms": meta.latency_ms,
            "error_message": meta.error_message,
            "error_code": meta.error_code,
            "status": meta.status or ("failed" if meta.failed else "sent"),
            "fallback_used": False,
            "attributes": dict(meta.attributes),
            "created_at": ensure_utc(meta.created_at) or datetime.now(timezone.utc),
        }

    def _insert_response(self, values: dict[str, Any]) -> Tuple[BotResponse, bool]:
        """
        Insert a response; idempotent on (conversation_id, external_message_id).

        Returns the row and whether it was created.
        """
        if values["external_message_id"] is None:
            response = BotResponse(**values)
            self.db.add(response)
            self.db.flush()
            return response, True

        stmt = (
            insert_for(self.db, BotResponse)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=["conversation_id", "external_message_id"],
                index_where=BotResponse.external_message_id.isnot(None),
            )
            .returning(BotResponse.id)
        )
        inserted_id = self.db.execute(stmt).scalar_one_or_none()
        if inserted_id is None:
            existing = self.find_response(
                values["conversation_id"], values["external_message_id"]
            )
            logger.debug(
                "Response %s already stored as %s",
                values["external_message_id"],
                existing.id,
            )
            return existing, False
        return self.db.get(BotResponse, inserted_id), True

    def _bump_counters(self, conversation_id: UUID, at: datetime) -> None:
        # last_activity_at never moves backwards
        self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                message_count=Conversation.message_count + 1,
                last_activity_at=case(
                    (Conversation.last_activity_at < at, at),
                    else_=Conversation.last_activity_at,
                ),
            )
            .execution_options(synchronize_session="fetch")
        )

    def _require_conversation(self, conversation_id: UUID) -> Conversation:
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None:
            raise ConstraintViolationError(
                f"Conversation {conversation_id} does not exist"
            )
        return conversation

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()
