"""
Replay of a legacy flat message log into the linked model.

The whole batch runs in one transaction: either every row lands with its
ownership links intact, or nothing is written.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, aliased

from app.core.errors import BackfillValidationError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.reaction import Reaction
from app.models.user_query import UserQuery
from app.schemas.attributes import merge_attributes
from app.schemas.backfill import BackfillReport, LegacyMessage
from app.schemas.message import OrphanResponse, ResponseMeta
from app.services.conversation_resolver import ConversationResolver
from app.services.identity_resolver import IdentityResolver
from app.services.message_linker import MessageLinker
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)


def group_by_conversation(
    rows: Iterable[LegacyMessage],
) -> Dict[str, List[LegacyMessage]]:
    """Group legacy rows by their legacy conversation, each group ordered by time."""
    groups: Dict[str, List[LegacyMessage]] = defaultdict(list)
    for row in rows:
        groups[row.legacy_conversation_id].append(row)
    for group in groups.values():
        group.sort(key=lambda r: (ensure_utc(r.created_at), r.kind != "query"))
    return dict(groups)


class BackfillReconciler:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.identity = IdentityResolver(db, autocommit=False)
        self.conversations = ConversationResolver(db, autocommit=False)
        self.linker = MessageLinker(db, autocommit=False)

    def run(self, rows: Sequence[LegacyMessage]) -> BackfillReport:
        """Replay ``rows``; raises BackfillValidationError and rolls back on any violation."""
        report = BackfillReport()
        if not rows:
            return report

        groups = group_by_conversation(rows)
        conversation_ids: Set[UUID] = set()
        user_ids: Set[UUID] = set()
        strategies: Counter = Counter()
        try:
            for legacy_conversation_id, group in groups.items():
                conversation_id, user_id = self._replay_group(
                    legacy_conversation_id, group, report, strategies
                )
                conversation_ids.add(conversation_id)
                user_ids.add(user_id)

            for conversation_id in conversation_ids:
                self._reconcile_counters(conversation_id)

            violations = self.validate(conversation_ids)
            if violations:
                raise BackfillValidationError(violations)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Backfill of %d rows rolled back", len(rows))
            raise

        report.conversations = len(conversation_ids)
        report.users = len(user_ids)
        report.strategies = dict(strategies)
        report.placeholders = strategies.get("placeholder_query", 0)
        logger.info(
            "Backfill done: %d conversations, %d queries, %d responses, "
            "%d placeholders, %d fallbacks, %d already stored",
            report.conversations,
            report.queries,
            report.responses,
            report.placeholders,
            report.fallbacks,
            report.skipped,
        )
        return report

    def _replay_group(
        self,
        legacy_conversation_id: str,
        group: List[LegacyMessage],
        report: BackfillReport,
        strategies: Counter,
    ) -> tuple[UUID, UUID]:
        first = next((r for r in group if r.kind == "query"), group[0])
        user = self.identity.resolve(
            first.platform,
            first.platform_user_id,
            seen_at=ensure_utc(group[-1].created_at),
        )
        conversation = self.conversations.resolve(
            first.platform,
            user.id,
            first.channel,
            thread=first.thread,
            at=ensure_utc(group[0].created_at),
        )
        # Several legacy conversations can collapse into one non-threaded conversation
        legacy_ids = list(conversation.attributes.get("legacy_conversation_ids") or [])
        if legacy_conversation_id not in legacy_ids:
            conversation.attributes = merge_attributes(
                conversation.attributes,
                {"legacy_conversation_ids": legacy_ids + [legacy_conversation_id]},
            )

        stored_queries, _ = self._stored_keys(UserQuery, conversation.id)
        for row in group:
            if row.kind != "query":
                continue
            if row.legacy_id in stored_queries:
                report.skipped += 1
                continue
            self.linker.persist_query(
                conversation.id,
                user.id,
                row.content,
                external_message_id=row.external_message_id,
                attrs=merge_attributes(row.attributes, {"legacy_id": row.legacy_id}),
                created_at=row.created_at,
            )
            report.queries += 1

        stored_responses, stored_external_ids = self._stored_keys(
            BotResponse, conversation.id
        )
        responses = []
        for row in group:
            if row.kind != "response":
                continue
            if (
                row.legacy_id in stored_responses
                or row.external_message_id in stored_external_ids
            ):
                report.skipped += 1
                continue
            responses.append(row)
        times = [ensure_utc(r.created_at) for r in responses]
        for index, row in enumerate(responses):
            orphan = OrphanResponse(
                content=row.content,
                created_at=times[index],
                meta=self._response_meta(row),
            )
            response = self.linker.link_orphan_response(
                conversation.id,
                orphan,
                siblings=times[:index] + times[index + 1 :],
            )
            strategies[response.attributes.get("link_strategy")] += 1
            report.responses += 1
            if response.fallback_used:
                report.fallbacks += 1

        return conversation.id, user.id

    def _stored_keys(self, model, conversation_id: UUID) -> tuple[Set[str], Set[str]]:
        """Legacy ids and external message ids already stored in a conversation."""
        rows = self.db.execute(
            select(model.external_message_id, model.attributes).where(
                model.conversation_id == conversation_id
            )
        ).all()
        legacy_ids = {
            (attributes or {}).get("legacy_id")
            for _, attributes in rows
            if (attributes or {}).get("legacy_id")
        }
        external_ids = {external_id for external_id, _ in rows if external_id}
        return legacy_ids, external_ids

    @staticmethod
    def _response_meta(row: LegacyMessage) -> ResponseMeta:
        return ResponseMeta(
            external_message_id=row.external_message_id,
            model_used=row.model_used,
            total_tokens=row.tokens_used,
            latency_ms=row.processing_time_ms,
            error_message=row.error_message,
            attributes=merge_attributes(row.attributes, {"legacy_id": row.legacy_id}),
        )

    def _reconcile_counters(self, conversation_id: UUID) -> None:
        """Recompute message_count and last_activity_at; placeholders do not count."""
        real_queries = self.db.execute(
            select(func.count(UserQuery.id), func.max(UserQuery.created_at)).where(
                UserQuery.conversation_id == conversation_id,
                UserQuery.is_placeholder.is_(False),
            )
        ).one()
        responses = self.db.execute(
            select(func.count(BotResponse.id), func.max(BotResponse.created_at)).where(
                BotResponse.conversation_id == conversation_id
            )
        ).one()
        latest: Optional[datetime] = max(
            (ensure_utc(v) for v in (real_queries[1], responses[1]) if v is not None),
            default=None,
        )
        values = {"message_count": real_queries[0] + responses[0]}
        if latest is not None:
            values["last_activity_at"] = latest
        self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )

    def validate(self, conversation_ids: Iterable[UUID]) -> List[str]:
        """Check ownership invariants for the given conversations; returns violations."""
        conversation_ids = list(conversation_ids)
        violations: List[str] = []
        if not conversation_ids:
            return violations

        owning_query = aliased(UserQuery)
        dangling = self.db.execute(
            select(BotResponse.id, BotResponse.query_id)
            .outerjoin(owning_query, owning_query.id == BotResponse.query_id)
            .where(
                BotResponse.conversation_id.in_(conversation_ids),
                owning_query.id.is_(None),
            )
        ).all()
        violations.extend(
            f"response {rid} references missing query {qid}" for rid, qid in dangling
        )

        crossed = self.db.execute(
            select(BotResponse.id, BotResponse.conversation_id, owning_query.conversation_id)
            .join(owning_query, owning_query.id == BotResponse.query_id)
            .where(
                BotResponse.conversation_id.in_(conversation_ids),
                owning_query.conversation_id != BotResponse.conversation_id,
            )
        ).all()
        violations.extend(
            f"response {rid} in conversation {cid} owned by query of conversation {qcid}"
            for rid, cid, qcid in crossed
        )

        orphan_queries = self.db.execute(
            select(UserQuery.id)
            .outerjoin(Conversation, Conversation.id == UserQuery.conversation_id)
            .where(
                UserQuery.conversation_id.in_(conversation_ids),
                Conversation.id.is_(None),
            )
        ).scalars().all()
        violations.extend(f"query {qid} has no conversation" for qid in orphan_queries)

        orphan_reactions = self.db.execute(
            select(Reaction.id)
            .outerjoin(BotResponse, BotResponse.id == Reaction.response_id)
            .where(BotResponse.id.is_(None))
        ).scalars().all()
        violations.extend(
            f"reaction {rid} references a missing response" for rid in orphan_reactions
        )
        return violations
