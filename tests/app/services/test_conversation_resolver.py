"""Tests for ConversationResolver."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from app.models.conversation import Conversation
from app.services.conversation_resolver import ConversationResolver
from app.services.conversation_service import ConversationService


def _count(db) -> int:
    return db.execute(select(func.count(Conversation.id))).scalar_one()


def test_threaded_resolution_is_unique_per_thread(db, setup_user):
    """Any number of resolutions of the same threaded key yield one active conversation."""
    resolver = ConversationResolver(db)
    ids = {
        resolver.resolve("telegram", setup_user.id, "C1", thread="T1").id
        for _ in range(5)
    }
    assert len(ids) == 1
    assert _count(db) == 1


def test_different_threads_get_different_conversations(db, setup_user):
    resolver = ConversationResolver(db)
    a = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")
    b = resolver.resolve("telegram", setup_user.id, "C1", thread="T2")
    assert a.id != b.id


def test_threaded_message_does_not_join_non_threaded_conversation(db, setup_user):
    resolver = ConversationResolver(db)
    flat = resolver.resolve("telegram", setup_user.id, "C1")
    threaded = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")
    assert flat.id != threaded.id
    assert flat.thread is None
    assert threaded.thread == "T1"


def test_non_threaded_messages_continue_same_conversation(db, setup_user):
    resolver = ConversationResolver(db)
    first = resolver.resolve("telegram", setup_user.id, "C1")
    second = resolver.resolve("telegram", setup_user.id, "C1")
    assert first.id == second.id


def test_archived_thread_keeps_its_conversation(db, setup_user):
    resolver = ConversationResolver(db)
    original = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")
    ConversationService(db).archive(original.id)

    again = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")

    assert again.id == original.id
    # Status only changes through explicit commands
    assert again.status == "archived"
    assert _count(db) == 1


def test_deleted_thread_keeps_its_conversation(db, setup_user):
    resolver = ConversationResolver(db)
    original = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")
    ConversationService(db).mark_deleted(original.id)

    again = resolver.resolve("telegram", setup_user.id, "C1", thread="T1")

    assert again.id == original.id
    assert _count(db) == 1


def test_archived_non_threaded_conversation_is_not_continued(db, setup_user):
    resolver = ConversationResolver(db)
    original = resolver.resolve("telegram", setup_user.id, "C1")
    ConversationService(db).archive(original.id)
    fresh = resolver.resolve("telegram", setup_user.id, "C1")
    assert fresh.id != original.id


def test_ambiguous_non_threaded_picks_most_recent_and_flags_it(db, setup_user):
    now = datetime.now(timezone.utc)
    older = Conversation(
        user_id=setup_user.id,
        platform="telegram",
        channel="C1",
        last_activity_at=now - timedelta(hours=2),
        attributes={},
    )
    newer = Conversation(
        user_id=setup_user.id,
        platform="telegram",
        channel="C1",
        last_activity_at=now - timedelta(minutes=1),
        attributes={},
    )
    db.add_all([older, newer])
    db.commit()

    resolved = ConversationResolver(db).resolve("telegram", setup_user.id, "C1")
    assert resolved.id == newer.id
    assert resolved.attributes["continuity"] == "recency"


def test_continuity_window_starts_a_new_conversation(db, setup_user):
    stale = Conversation(
        user_id=setup_user.id,
        platform="telegram",
        channel="C1",
        last_activity_at=datetime.now(timezone.utc) - timedelta(hours=3),
        attributes={},
    )
    db.add(stale)
    db.commit()

    resolver = ConversationResolver(db, continuity_window=timedelta(minutes=30))
    resolved = resolver.resolve("telegram", setup_user.id, "C1")
    assert resolved.id != stale.id


def test_resolution_touches_last_activity(db, setup_conversation):
    at = datetime.now(timezone.utc)
    resolved = ConversationResolver(db).resolve(
        "telegram",
        setup_conversation.user_id,
        setup_conversation.channel,
        at=at,
    )
    assert resolved.id == setup_conversation.id
    db.refresh(resolved)
    assert resolved.last_activity_at.replace(tzinfo=timezone.utc) >= at - timedelta(
        seconds=1
    )
