"""Tests for IdentityResolver."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from app.models.user import User
from app.services.identity_resolver import IdentityResolver
from app.utils.time import ensure_utc


def test_resolve_creates_user_with_defaults(db):
    user = IdentityResolver(db).resolve("telegram", "42")
    assert user.id is not None
    assert user.platform == "telegram"
    assert user.platform_user_id == "42"
    assert user.display_name == "42"
    assert user.language_code == "en"
    assert user.is_bot is False


def test_resolve_same_identity_returns_same_user(db):
    resolver = IdentityResolver(db)
    first = resolver.resolve("telegram", "42")
    second = resolver.resolve("telegram", "42")
    assert first.id == second.id
    assert db.execute(select(func.count(User.id))).scalar_one() == 1


def test_same_external_id_on_other_platform_is_another_user(db):
    resolver = IdentityResolver(db)
    telegram_user = resolver.resolve("telegram", "42")
    slack_user = resolver.resolve("slack", "42")
    assert telegram_user.id != slack_user.id


def test_repeat_resolution_merges_non_null_attrs(db):
    """Later occurrences fill in new fields and never blank out known ones."""
    resolver = IdentityResolver(db)
    resolver.resolve(
        "telegram",
        "42",
        {
            "username": "alice",
            "display_name": "Alice",
            "attributes": {"telegram": {"is_premium": True}},
        },
    )
    user = resolver.resolve(
        "telegram",
        "42",
        {
            "username": None,
            "timezone": "Europe/Berlin",
            "attributes": {"telegram": {"chat_type": "private"}},
        },
    )
    assert user.username == "alice"
    assert user.display_name == "Alice"
    assert user.timezone == "Europe/Berlin"
    assert user.attributes["telegram"] == {"is_premium": True, "chat_type": "private"}


def test_unknown_attr_keys_go_to_attribute_bag(db):
    user = IdentityResolver(db).resolve("slack", "U1", {"team_id": "T9"})
    assert user.attributes["team_id"] == "T9"


def test_repeat_resolution_refreshes_last_seen(db):
    resolver = IdentityResolver(db)
    earlier = datetime.now(timezone.utc) - timedelta(days=1)
    resolver.resolve("telegram", "42", seen_at=earlier)
    later = datetime.now(timezone.utc)
    user = resolver.resolve("telegram", "42", seen_at=later)
    db.refresh(user)
    assert ensure_utc(user.last_seen_at) >= later - timedelta(seconds=1)


def test_get_returns_none_for_unknown_identity(db):
    assert IdentityResolver(db).get("telegram", "nobody") is None
