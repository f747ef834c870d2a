"""Tests for the inbound event envelope and fingerprints."""

import pytest
from pydantic import ValidationError

from app.schemas.events import EventType, Fingerprint, InboundEvent


def _event(**overrides):
    data = {
        "event_type": "message",
        "platform": "telegram",
        "external_user_id": "42",
        "channel": "C1",
        "external_message_id": "m-7",
        "text": "hi",
    }
    data.update(overrides)
    return InboundEvent(**data)


def test_event_key_prefers_platform_event_id():
    assert _event(external_event_id="upd-1").event_key() == "upd-1"


def test_event_key_falls_back_to_message_id():
    assert _event().event_key() == "m-7"


def test_reaction_without_event_id_has_no_fingerprint():
    event = _event(event_type="reaction_add", reaction_label="👍", text=None)
    assert event.is_reaction
    assert event.event_key() is None
    assert Fingerprint.from_event(event) is None


def test_reaction_with_event_id_is_fingerprinted():
    event = _event(
        event_type="reaction_add",
        reaction_label="👍",
        text=None,
        external_event_id="124:👍",
    )
    assert Fingerprint.from_event(event).external_event_id == "124:👍"


def test_event_without_any_id_has_no_fingerprint():
    event = _event(external_message_id=None)
    assert event.event_key() is None
    assert Fingerprint.from_event(event) is None


def test_fingerprint_is_scoped_by_platform_user_and_type():
    message = Fingerprint.from_event(_event(external_event_id="x"))
    other_user = Fingerprint.from_event(_event(external_event_id="x", external_user_id="43"))
    removal = Fingerprint.from_event(
        _event(
            external_event_id="x",
            event_type=EventType.REACTION_REMOVE,
            reaction_label="👍",
        )
    )
    assert message == Fingerprint.from_event(_event(external_event_id="x"))
    assert message.user_id == "telegram:42"
    assert len({message, other_user, removal}) == 3


@pytest.mark.parametrize(
    "missing",
    [{"reaction_label": None}, {"external_message_id": None}],
)
def test_reaction_event_requires_label_and_target(missing):
    data = {"event_type": "reaction_add", "reaction_label": "👍"}
    data.update(missing)
    with pytest.raises(ValidationError):
        _event(**data)


def test_unknown_platform_is_rejected():
    with pytest.raises(ValidationError):
        _event(platform="irc")
