"""Tests for MessageLinker."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.core.errors import ConstraintViolationError, NotFoundError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.user_query import UserQuery
from app.schemas.message import OrphanResponse, ResponseMeta
from app.services.link_strategies import PLACEHOLDER_CONTENT
from app.services.message_linker import MessageLinker


def _query_count(db, conversation_id) -> int:
    return db.execute(
        select(func.count(UserQuery.id)).where(UserQuery.conversation_id == conversation_id)
    ).scalar_one()


def test_persist_query_increments_counters(db, setup_conversation):
    linker = MessageLinker(db)
    query = linker.persist_query(
        setup_conversation.id, setup_conversation.user_id, "hello", external_message_id="m1"
    )
    db.refresh(setup_conversation)
    assert query.content == "hello"
    assert query.status == "received"
    assert setup_conversation.message_count == 1


def test_persist_query_is_idempotent(db, setup_conversation):
    """N identical calls produce one row and a single counter increment."""
    linker = MessageLinker(db)
    ids = {
        linker.persist_query(
            setup_conversation.id,
            setup_conversation.user_id,
            "hello",
            external_message_id="m1",
        ).id
        for _ in range(4)
    }
    db.refresh(setup_conversation)
    assert len(ids) == 1
    assert _query_count(db, setup_conversation.id) == 1
    assert setup_conversation.message_count == 1


def test_persist_query_without_external_id_always_inserts(db, setup_conversation):
    linker = MessageLinker(db)
    linker.persist_query(setup_conversation.id, setup_conversation.user_id, "a")
    linker.persist_query(setup_conversation.id, setup_conversation.user_id, "a")
    assert _query_count(db, setup_conversation.id) == 2


def test_persist_query_rejects_unknown_conversation(db, setup_user):
    with pytest.raises(ConstraintViolationError):
        MessageLinker(db).persist_query(uuid4(), setup_user.id, "hello")


def test_persist_response_links_query_and_counts(db, setup_query):
    linker = MessageLinker(db)
    meta = ResponseMeta(model_used="m", prompt_tokens=3, completion_tokens=4, latency_ms=12)
    response = linker.persist_response(
        setup_query.id, setup_query.conversation_id, "hi there", meta
    )
    conversation = db.get(Conversation, setup_query.conversation_id)
    db.refresh(conversation)
    assert response.query_id == setup_query.id
    assert response.total_tokens == 7
    assert response.status == "sent"
    assert response.fallback_used is False
    assert conversation.message_count == 1


def test_persist_response_is_idempotent_on_external_id(db, setup_query):
    linker = MessageLinker(db)
    meta = ResponseMeta(external_message_id="out-1")
    first = linker.persist_response(
        setup_query.id, setup_query.conversation_id, "hi", meta
    )
    second = linker.persist_response(
        setup_query.id, setup_query.conversation_id, "hi again", meta
    )

    conversation = db.get(Conversation, setup_query.conversation_id)
    db.refresh(conversation)
    assert second.id == first.id
    assert second.content == "hi"
    assert conversation.message_count == 1
    assert db.execute(select(func.count(BotResponse.id))).scalar_one() == 1


def test_persist_response_rejects_unknown_query(db, setup_conversation):
    with pytest.raises(ConstraintViolationError):
        MessageLinker(db).persist_response(uuid4(), setup_conversation.id, "x")


def test_persist_response_rejects_query_of_other_conversation(
    db, setup_query, setup_user
):
    other = Conversation(
        user_id=setup_user.id, platform="telegram", channel="other", attributes={}
    )
    db.add(other)
    db.commit()
    with pytest.raises(ConstraintViolationError):
        MessageLinker(db).persist_response(setup_query.id, other.id, "x")


def test_failed_response_is_recorded_with_error(db, setup_query):
    meta = ResponseMeta(error_message="timed out", error_code="AI_TIMEOUT")
    response = MessageLinker(db).persist_response(
        setup_query.id, setup_query.conversation_id, "", meta
    )
    assert response.status == "failed"
    assert response.content == ""
    assert response.error_code == "AI_TIMEOUT"


def test_record_response_delivery_sets_platform_id(db, setup_query):
    linker = MessageLinker(db)
    response = linker.persist_response(setup_query.id, setup_query.conversation_id, "x")
    linker.record_response_delivery(response.id, "777", {"delivery": "edited"})
    db.refresh(response)
    assert response.external_message_id == "777"
    assert response.attributes["delivery"] == "edited"


def test_record_response_delivery_unknown_response(db):
    with pytest.raises(NotFoundError):
        MessageLinker(db).record_response_delivery(uuid4(), "1")


def test_orphan_after_query_links_to_preceding_query(db, setup_query):
    at = datetime.now(timezone.utc)
    response = MessageLinker(db).link_orphan_response(
        setup_query.conversation_id, OrphanResponse(content="late reply", created_at=at)
    )
    assert response.query_id == setup_query.id
    assert response.fallback_used is False
    assert response.attributes["link_strategy"] == "preceding_query"


def test_orphan_before_any_query_gets_placeholder(db, setup_conversation):
    at = datetime.now(timezone.utc)
    response = MessageLinker(db).link_orphan_response(
        setup_conversation.id, OrphanResponse(content="hello?", created_at=at)
    )
    placeholder = db.get(UserQuery, response.query_id)
    db.refresh(setup_conversation)
    assert placeholder.is_placeholder is True
    assert placeholder.content == PLACEHOLDER_CONTENT
    assert placeholder.created_at.replace(tzinfo=timezone.utc) < at
    assert response.attributes["link_strategy"] == "placeholder_query"
    # Placeholders are not counted as messages
    assert setup_conversation.message_count == 1


def test_orphan_in_contested_slot_falls_back_to_earliest_query(db, setup_query):
    """A second reply after an already-answered query is linked by last resort."""
    linker = MessageLinker(db)
    linker.persist_response(
        setup_query.id,
        setup_query.conversation_id,
        "first reply",
        ResponseMeta(created_at=datetime.now(timezone.utc) - timedelta(seconds=30)),
    )
    response = linker.link_orphan_response(
        setup_query.conversation_id,
        OrphanResponse(content="second reply", created_at=datetime.now(timezone.utc)),
    )
    assert response.query_id == setup_query.id
    assert response.fallback_used is True
    assert response.attributes["link_strategy"] == "earliest_query"


def test_orphan_sibling_marks_slot_contested(db, setup_query):
    at = datetime.now(timezone.utc)
    response = MessageLinker(db).link_orphan_response(
        setup_query.conversation_id,
        OrphanResponse(content="one of two", created_at=at),
        siblings=[at + timedelta(seconds=5)],
    )
    assert response.fallback_used is True


def test_orphan_with_no_strategy_result_is_rejected(db, setup_conversation):
    linker = MessageLinker(db, strategies=[("never", lambda ctx: None)])
    with pytest.raises(ConstraintViolationError):
        linker.link_orphan_response(
            setup_conversation.id,
            OrphanResponse(content="x", created_at=datetime.now(timezone.utc)),
        )
    assert db.execute(select(func.count(BotResponse.id))).scalar_one() == 0


def test_orphan_with_stored_external_id_returns_existing_row(db, setup_conversation):
    linker = MessageLinker(db)
    at = datetime.now(timezone.utc)
    orphan = OrphanResponse(
        content="reply",
        created_at=at,
        meta=ResponseMeta(external_message_id="out-9"),
    )
    first = linker.link_orphan_response(setup_conversation.id, orphan)

    again = linker.link_orphan_response(setup_conversation.id, orphan)

    assert again.id == first.id
    # No second placeholder is made for the replayed row
    assert _query_count(db, setup_conversation.id) == 1
    assert db.execute(select(func.count(BotResponse.id))).scalar_one() == 1
