"""Tests for platform attribute validation and merging."""

import pytest
from pydantic import ValidationError

from app.schemas.attributes import merge_attributes, validate_platform_attributes


def test_validate_namespaces_and_drops_none():
    attrs = validate_platform_attributes(
        "telegram", {"chat_type": "private", "chat_title": None}
    )
    assert attrs == {"telegram": {"chat_type": "private"}}


def test_validate_keeps_unknown_keys():
    attrs = validate_platform_attributes("slack", {"team_id": "T1", "locale": "en-US"})
    assert attrs == {"slack": {"team_id": "T1", "locale": "en-US"}}


def test_validate_rejects_wrong_type_for_known_field():
    with pytest.raises(ValidationError):
        validate_platform_attributes("telegram", {"message_thread_id": "not-a-number"})


def test_validate_empty_returns_empty():
    assert validate_platform_attributes("telegram", None) == {}
    assert validate_platform_attributes("telegram", {}) == {}


def test_merge_is_nested_and_none_never_overwrites():
    existing = {"telegram": {"chat_type": "private", "is_premium": False}, "legacy_id": "1"}
    incoming = {"telegram": {"is_premium": True}, "legacy_id": None, "continuity": "recency"}

    merged = merge_attributes(existing, incoming)

    assert merged == {
        "telegram": {"chat_type": "private", "is_premium": True},
        "legacy_id": "1",
        "continuity": "recency",
    }
    assert existing["telegram"]["is_premium"] is False
