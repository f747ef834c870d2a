"""Fixtures for conversations, queries and responses."""

from datetime import datetime, timedelta, timezone

import pytest

from app.models.bot_response import BotResponse
from app.models.conversation import Conversation
from app.models.user_query import UserQuery


@pytest.fixture(scope="function")
def setup_conversation(db, faker, setup_user):
    """Active non-threaded conversation with no messages."""
    conversation = Conversation(
        user_id=setup_user.id,
        platform="telegram",
        channel=str(faker.random_int(min=1000, max=9999)),
        thread=None,
        status="active",
        message_count=0,
        last_activity_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        attributes={},
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


@pytest.fixture(scope="function")
def setup_query(db, faker, setup_conversation):
    query = UserQuery(
        conversation_id=setup_conversation.id,
        user_id=setup_conversation.user_id,
        content=faker.sentence(),
        external_message_id=str(faker.random_int(min=1, max=10_000)),
        created_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        attributes={},
    )
    db.add(query)
    db.commit()
    db.refresh(query)
    return query


@pytest.fixture(scope="function")
def setup_response(db, faker, setup_query):
    """Delivered response to ``setup_query`` with a platform message id."""
    response = BotResponse(
        query_id=setup_query.id,
        conversation_id=setup_query.conversation_id,
        content=faker.paragraph(),
        external_message_id=str(faker.random_int(min=20_000, max=30_000)),
        created_at=datetime.now(timezone.utc),
        attributes={},
    )
    db.add(response)
    db.commit()
    db.refresh(response)
    return response
