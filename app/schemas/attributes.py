"""
Typed platform extension map for entity attribute bags.

Platform metadata is validated at the boundary through the platform's model
and stored namespaced under the platform key (``{"telegram": {...}}``).
Flags written by the core itself (``legacy_id``, ``continuity``,
``link_strategy`` ...) live at the top level of the bag.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Type

from pydantic import BaseModel, ConfigDict


class Platform(str, Enum):
    """Supported chat platforms."""

    TELEGRAM = "telegram"
    SLACK = "slack"
    GENERIC = "generic"


class PlatformAttributes(BaseModel):
    """Base for per-platform metadata. Unknown keys are kept, known keys are typed."""

    model_config = ConfigDict(extra="allow")


class TelegramAttributes(PlatformAttributes):
    chat_type: Optional[str] = None
    chat_title: Optional[str] = None
    language_code: Optional[str] = None
    is_premium: Optional[bool] = None
    message_thread_id: Optional[int] = None
    reply_to_message_id: Optional[int] = None


class SlackAttributes(PlatformAttributes):
    team_id: Optional[str] = None
    channel_type: Optional[str] = None
    is_admin: Optional[bool] = None
    tz: Optional[str] = None
    parent_message_ts: Optional[str] = None


class GenericAttributes(PlatformAttributes):
    pass


PLATFORM_ATTRIBUTE_MODELS: dict[Platform, Type[PlatformAttributes]] = {
    Platform.TELEGRAM: TelegramAttributes,
    Platform.SLACK: SlackAttributes,
    Platform.GENERIC: GenericAttributes,
}


def validate_platform_attributes(
    platform: Platform | str, data: Optional[dict[str, Any]]
) -> dict[str, Any]:
    """
    Validate raw platform metadata and return it namespaced by platform.

    Raises pydantic.ValidationError when a known field has the wrong type.
    """
    if not data:
        return {}
    key = Platform(platform)
    model = PLATFORM_ATTRIBUTE_MODELS[key]
    validated = model.model_validate(data)
    return {key.value: validated.model_dump(mode="json", exclude_none=True)}


def merge_attributes(
    existing: Optional[dict[str, Any]], incoming: Optional[dict[str, Any]]
) -> dict[str, Any]:
    """Merge two attribute bags; nested dicts merge key-wise and None never overwrites."""
    merged: dict[str, Any] = dict(existing or {})
    for key, value in (incoming or {}).items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_attributes(current, value)
        else:
            merged[key] = value
    return merged
