"""Platform adapters for chat integrations."""

from app.adapters.base import ChatPlatform
from app.adapters.telegram import TelegramAdapter

__all__ = ["ChatPlatform", "TelegramAdapter"]
