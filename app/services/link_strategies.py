"""
Named strategies that pick the owning query of a response whose origin is unknown.

Each strategy takes a LinkContext and returns a query id or None. The
MessageLinker tries them in order and records the name of the first one that
succeeds in the response's ``link_strategy`` attribute.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.bot_response import BotResponse
from app.models.user_query import UserQuery
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)

PLACEHOLDER_CONTENT = "[Backfill: no original query found]"


@dataclass
class LinkContext:
    db: Session
    conversation_id: UUID
    user_id: UUID
    created_at: datetime
    # created_at of the other responses replayed in the same batch
    siblings: Sequence[datetime] = field(default_factory=tuple)
    placeholder_offset: timedelta = timedelta(seconds=1)


LinkStrategy = Callable[[LinkContext], Optional[UUID]]


def _latest_real_query_before(ctx: LinkContext) -> Optional[UserQuery]:
    stmt = (
        select(UserQuery)
        .where(
            UserQuery.conversation_id == ctx.conversation_id,
            UserQuery.is_placeholder.is_(False),
            UserQuery.created_at <= ctx.created_at,
        )
        .order_by(UserQuery.created_at.desc())
        .limit(1)
    )
    return ctx.db.execute(stmt).scalars().first()


def _slot_is_contested(ctx: LinkContext, query: UserQuery) -> bool:
    """True if another response falls between ``query`` and the query after it."""
    slot_start = ensure_utc(query.created_at)
    next_query_at = ctx.db.execute(
        select(UserQuery.created_at)
        .where(
            UserQuery.conversation_id == ctx.conversation_id,
            UserQuery.created_at > query.created_at,
        )
        .order_by(UserQuery.created_at.asc())
        .limit(1)
    ).scalar_one_or_none()
    slot_end = ensure_utc(next_query_at)

    claimed = select(BotResponse.id).where(
        BotResponse.conversation_id == ctx.conversation_id,
        BotResponse.created_at >= slot_start,
    )
    if slot_end is not None:
        claimed = claimed.where(BotResponse.created_at < slot_end)
    if ctx.db.execute(claimed.limit(1)).first() is not None:
        return True

    for sibling in ctx.siblings:
        sibling = ensure_utc(sibling)
        if sibling >= slot_start and (slot_end is None or sibling < slot_end):
            return True
    return False


def preceding_query(ctx: LinkContext) -> Optional[UUID]:
    """Latest real query before the response, when no other response claims its slot."""
    query = _latest_real_query_before(ctx)
    if query is None:
        return None
    if _slot_is_contested(ctx, query):
        logger.debug("Slot of query %s is contested", query.id)
        return None
    return query.id


def placeholder_query(ctx: LinkContext) -> Optional[UUID]:
    """Synthesize a query just before the response when nothing real precedes it."""
    if _latest_real_query_before(ctx) is not None:
        return None
    placeholder = UserQuery(
        id=uuid.uuid4(),
        conversation_id=ctx.conversation_id,
        user_id=ctx.user_id,
        content=PLACEHOLDER_CONTENT,
        status="placeholder",
        is_placeholder=True,
        attributes={"placeholder": True},
        created_at=ctx.created_at - ctx.placeholder_offset,
    )
    ctx.db.add(placeholder)
    ctx.db.flush()
    logger.info(
        "Created placeholder query %s in conversation %s",
        placeholder.id,
        ctx.conversation_id,
    )
    return placeholder.id


def earliest_query(ctx: LinkContext) -> Optional[UUID]:
    """Last resort: the first query of the conversation."""
    return ctx.db.execute(
        select(UserQuery.id)
        .where(UserQuery.conversation_id == ctx.conversation_id)
        .order_by(UserQuery.created_at.asc())
        .limit(1)
    ).scalar_one_or_none()


DEFAULT_LINK_STRATEGIES: List[Tuple[str, LinkStrategy]] = [
    ("preceding_query", preceding_query),
    ("placeholder_query", placeholder_query),
    ("earliest_query", earliest_query),
]

# Strategies whose result is recorded with fallback_used=True
FALLBACK_STRATEGIES = frozenset({"earliest_query"})
