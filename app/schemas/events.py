"""
Normalized inbound event envelope.

Platform adapters convert webhook payloads into InboundEvent; the core never
sees platform-specific shapes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from app.schemas.attributes import Platform


class EventType(str, Enum):
    MESSAGE = "message"
    REACTION_ADD = "reaction_add"
    REACTION_REMOVE = "reaction_remove"


class InboundEvent(BaseModel):
    """Normalized inbound event (adapter -> core)."""

    event_type: EventType
    platform: Platform
    external_user_id: str
    channel: str
    thread: Optional[str] = None
    external_message_id: Optional[str] = None
    external_event_id: Optional[str] = None
    text: Optional[str] = None
    reaction_label: Optional[str] = None
    reaction_glyph: Optional[str] = None
    is_bot: bool = False
    user_attributes: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_required_fields(self) -> "InboundEvent":
        if self.event_type != EventType.MESSAGE:
            if not self.reaction_label:
                raise ValueError("reaction events require reaction_label")
            if not self.external_message_id:
                raise ValueError("reaction events require external_message_id")
        return self

    @property
    def is_reaction(self) -> bool:
        return self.event_type in (EventType.REACTION_ADD, EventType.REACTION_REMOVE)

    def event_key(self) -> Optional[str]:
        """
        Platform event id; messages fall back to their message id.

        Reactions without an event id have no key: add, remove, add again on the
        same message is legitimate and converges through the reaction table.
        """
        if self.external_event_id:
            return self.external_event_id
        if self.is_reaction or not self.external_message_id:
            return None
        return self.external_message_id


@dataclass(frozen=True)
class Fingerprint:
    """Short-lived key used to detect redelivered events."""

    user_id: str
    external_event_id: str
    event_type: str

    @classmethod
    def from_event(cls, event: InboundEvent) -> Optional["Fingerprint"]:
        key = event.event_key()
        if key is None:
            return None
        return cls(
            user_id=f"{event.platform.value}:{event.external_user_id}",
            external_event_id=key,
            event_type=event.event_type.value,
        )


class EventOutcome(BaseModel):
    """What processing an inbound event produced."""

    status: str  # processed | duplicate | ignored | dropped
    conversation_id: Optional[str] = None
    query_id: Optional[str] = None
    response_id: Optional[str] = None
    reaction_id: Optional[str] = None
    detail: Optional[str] = None
