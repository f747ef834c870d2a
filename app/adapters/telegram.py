"""
Telegram platform adapter.

Uses python-telegram-bot (v20+, async Bot) for parsing webhook updates and for
the outbound calls. Forum topics map to threads; private chats and groups
without topics are non-threaded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from telegram import Bot, Update
from telegram.error import TelegramError

from app.adapters.base import ChatPlatform
from app.core.errors import TransientIOError
from app.schemas.attributes import Platform, validate_platform_attributes
from app.schemas.events import EventType, InboundEvent

logger = logging.getLogger(__name__)


def _reaction_label(reaction: Any) -> Optional[str]:
    emoji = getattr(reaction, "emoji", None)
    if emoji:
        return emoji
    custom = getattr(reaction, "custom_emoji_id", None)
    if custom:
        return f"custom:{custom}"
    return getattr(reaction, "type", None)


class TelegramAdapter(ChatPlatform):
    """Telegram adapter: parse webhook updates, send and edit messages via Bot API."""

    TELEGRAM_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
    platform = Platform.TELEGRAM

    def __init__(
        self,
        bot_token: str,
        webhook_secret: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self._bot_token = bot_token
        self._webhook_secret = webhook_secret
        self._timeout = timeout
        self._bot: Optional[Bot] = None

    def _get_bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(token=self._bot_token)
        return self._bot

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """Validate X-Telegram-Bot-Api-Secret-Token if webhook secret is configured."""
        expected = secret or self._webhook_secret
        if not expected:
            return True
        request_headers = request_headers or {}
        header_lower = self.TELEGRAM_SECRET_HEADER.lower()
        actual = None
        for key, value in request_headers.items():
            if key.lower() == header_lower:
                actual = value
                break
        return actual == expected

    def parse_webhook(self, raw_payload: dict[str, Any]) -> list[InboundEvent]:
        """Parse a Telegram update into message or reaction events."""
        update = Update.de_json(raw_payload, self._get_bot())
        if update is None:
            raise ValueError("Invalid Telegram update: de_json returned None")
        if update.message:
            return [self._message_event(update)]
        if update.message_reaction:
            return self._reaction_events(update)
        raise ValueError("Telegram update has no message or message_reaction")

    def _message_event(self, update: Update) -> InboundEvent:
        msg = update.message
        from_user = msg.from_user
        chat_id = str(msg.chat_id)
        thread = (
            str(msg.message_thread_id)
            if msg.is_topic_message and msg.message_thread_id
            else None
        )
        user_attributes: dict[str, Any] = {}
        if from_user:
            user_attributes = {
                "username": from_user.username,
                "display_name": from_user.full_name,
                "language_code": from_user.language_code,
                "is_bot": from_user.is_bot,
                "attributes": validate_platform_attributes(
                    Platform.TELEGRAM,
                    {"is_premium": from_user.is_premium},
                ),
            }
        attributes = validate_platform_attributes(
            Platform.TELEGRAM,
            {
                "chat_type": msg.chat.type,
                "chat_title": msg.chat.title,
                "message_thread_id": msg.message_thread_id,
                "reply_to_message_id": (
                    msg.reply_to_message.message_id if msg.reply_to_message else None
                ),
            },
        )
        return InboundEvent(
            event_type=EventType.MESSAGE,
            platform=Platform.TELEGRAM,
            external_user_id=str(from_user.id) if from_user else chat_id,
            channel=chat_id,
            thread=thread,
            external_message_id=str(msg.message_id),
            external_event_id=str(update.update_id),
            text=msg.text or msg.caption or "",
            is_bot=bool(from_user and from_user.is_bot),
            user_attributes=user_attributes,
            attributes=attributes,
        )

    def _reaction_events(self, update: Update) -> list[InboundEvent]:
        """One event per reaction added or removed in the update."""
        reaction = update.message_reaction
        chat_id = str(reaction.chat.id)
        if reaction.user is not None:
            external_user_id = str(reaction.user.id)
            is_bot = reaction.user.is_bot
        else:
            # Anonymous group admins react on behalf of a chat
            actor = reaction.actor_chat
            external_user_id = str(actor.id) if actor else chat_id
            is_bot = False

        old = {_reaction_label(r) for r in reaction.old_reaction or ()}
        new = {_reaction_label(r) for r in reaction.new_reaction or ()}
        changes = [(EventType.REACTION_ADD, label) for label in sorted(new - old)]
        changes += [(EventType.REACTION_REMOVE, label) for label in sorted(old - new)]

        events = []
        for event_type, label in changes:
            if not label:
                continue
            events.append(
                InboundEvent(
                    event_type=event_type,
                    platform=Platform.TELEGRAM,
                    external_user_id=external_user_id,
                    channel=chat_id,
                    external_message_id=str(reaction.message_id),
                    external_event_id=f"{update.update_id}:{label}",
                    reaction_label=label,
                    reaction_glyph=None if label.startswith("custom:") else label,
                    is_bot=is_bot,
                )
            )
        return events

    async def send_text(
        self, channel: str, text: str, thread: Optional[str] = None
    ) -> str:
        """Send message via Telegram Bot API. Returns the new message id."""
        send_kw: dict[str, Any] = {"chat_id": channel, "text": text}
        if thread:
            send_kw["message_thread_id"] = int(thread)
        try:
            sent = await asyncio.wait_for(
                self._get_bot().send_message(**send_kw), timeout=self._timeout
            )
        except (TelegramError, asyncio.TimeoutError) as e:
            raise TransientIOError(
                f"Telegram send_message failed: {e}", code="PLATFORM_SEND_FAILED"
            ) from e
        return str(sent.message_id)

    async def update_text(
        self, channel: str, external_message_id: str, text: str
    ) -> bool:
        try:
            await asyncio.wait_for(
                self._get_bot().edit_message_text(
                    chat_id=channel,
                    message_id=int(external_message_id),
                    text=text,
                ),
                timeout=self._timeout,
            )
        except (TelegramError, asyncio.TimeoutError) as e:
            logger.warning(
                "Telegram edit of message %s in %s failed: %s",
                external_message_id,
                channel,
                e,
            )
            return False
        return True

    async def fetch_user_profile(self, external_user_id: str) -> dict[str, Any]:
        """Username, display name and bio from getChat."""
        try:
            chat = await asyncio.wait_for(
                self._get_bot().get_chat(chat_id=external_user_id),
                timeout=self._timeout,
            )
        except (TelegramError, asyncio.TimeoutError) as e:
            raise TransientIOError(
                f"Telegram get_chat failed: {e}", code="PLATFORM_PROFILE_FAILED"
            ) from e
        display_name = " ".join(
            part for part in (chat.first_name, chat.last_name) if part
        )
        profile: dict[str, Any] = {
            "username": chat.username,
            "display_name": display_name or chat.title,
        }
        bio = getattr(chat, "bio", None)
        if bio:
            profile["attributes"] = {"telegram": {"bio": bio}}
        return profile
