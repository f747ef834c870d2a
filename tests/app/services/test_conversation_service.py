"""Tests for conversation and user stats."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.core.errors import NotFoundError
from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.reaction import Reaction
from app.models.user_query import UserQuery
from app.services.conversation_service import ConversationService


def _react(db, response, label, sentiment=None, removed=False):
    now = datetime.now(timezone.utc)
    reaction = Reaction(
        response_id=response.id,
        user_id=None,
        label=label,
        created_at=now,
        removed_at=now if removed else None,
        attributes={"sentiment": sentiment} if sentiment else {},
    )
    db.add(reaction)
    db.commit()
    return reaction


def test_conversation_stats_count_active_reactions_by_sentiment(
    db, setup_query, setup_response
):
    db.add(
        UserQuery(
            conversation_id=setup_query.conversation_id,
            user_id=setup_query.user_id,
            content="",
            is_placeholder=True,
            attributes={},
        )
    )
    db.commit()
    _react(db, setup_response, "thumbsup", "positive")
    _react(db, setup_response, "heart", "positive")
    _react(db, setup_response, "thumbsdown", "negative")
    _react(db, setup_response, "eyes", "neutral")
    _react(db, setup_response, "fire", "positive", removed=True)

    stats = ConversationService(db).get_stats(setup_query.conversation_id)

    assert stats.query_count == 2
    assert stats.placeholder_query_count == 1
    assert stats.response_count == 1
    assert stats.reaction_count == 4
    assert stats.sentiment.positive == 2
    assert stats.sentiment.negative == 1
    assert stats.sentiment.neutral == 1


def test_reaction_without_stored_sentiment_is_classified(db, setup_response):
    _react(db, setup_response, "thumbsdown")

    stats = ConversationService(db).get_stats(setup_response.conversation_id)

    assert stats.sentiment.negative == 1


def test_conversation_stats_unknown_conversation(db):
    with pytest.raises(NotFoundError):
        ConversationService(db).get_stats(uuid4())


def test_empty_conversation_stats(db, setup_conversation):
    stats = ConversationService(db).get_stats(setup_conversation.id)

    assert stats.query_count == 0
    assert stats.response_count == 0
    assert stats.reaction_count == 0


def test_user_stats_span_every_owned_conversation(
    db, setup_user, setup_another_user, setup_query, setup_response
):
    archived = Conversation(
        user_id=setup_user.id,
        platform="telegram",
        channel="archived-room",
        status="archived",
        message_count=2,
        last_activity_at=datetime.now(timezone.utc),
        attributes={},
    )
    db.add(archived)
    db.commit()
    query = UserQuery(
        conversation_id=archived.id,
        user_id=setup_user.id,
        content="older question",
        attributes={},
    )
    db.add(query)
    db.commit()
    response = BotResponse(
        query_id=query.id,
        conversation_id=archived.id,
        content="older answer",
        attributes={},
    )
    db.add(response)
    db.commit()
    _react(db, setup_response, "thumbsup", "positive")
    _react(db, response, "thumbsdown", "negative")

    stats = ConversationService(db).get_user_stats(setup_user.id)

    assert stats.total_conversations == 2
    assert stats.total_queries == 2
    assert stats.total_responses == 2
    assert stats.total_reactions == 2
    assert stats.sentiment.positive == 1
    assert stats.sentiment.negative == 1

    other = ConversationService(db).get_user_stats(setup_another_user.id)
    assert other.total_conversations == 0
    assert other.total_reactions == 0


def test_user_stats_unknown_user(db):
    with pytest.raises(NotFoundError):
        ConversationService(db).get_user_stats(uuid4())
