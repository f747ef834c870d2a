"""
Chat platform interface.

Adapters encapsulate platform-specific logic: they turn webhook payloads into
normalized InboundEvents and perform the few outbound calls the core needs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from app.schemas.attributes import Platform
from app.schemas.events import InboundEvent


class ChatPlatform(ABC):
    """Contract for chat platforms. New platforms implement this interface."""

    platform: Platform = Platform.GENERIC

    @abstractmethod
    def parse_webhook(self, raw_payload: dict[str, Any]) -> list[InboundEvent]:
        """Parse a raw webhook payload into zero or more events. Raise if invalid."""
        ...

    @abstractmethod
    async def send_text(
        self, channel: str, text: str, thread: Optional[str] = None
    ) -> str:
        """Send a message and return its platform message id. Raises TransientIOError."""
        ...

    @abstractmethod
    async def update_text(
        self, channel: str, external_message_id: str, text: str
    ) -> bool:
        """Replace the text of a sent message. False when the edit did not happen."""
        ...

    async def fetch_user_profile(self, external_user_id: str) -> dict[str, Any]:
        """Profile fields for IdentityResolver. Override if the platform exposes them."""
        return {}

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """
        Verify webhook request (e.g. secret token). Override if platform supports it.
        Return True if valid or verification not required; False to reject.
        """
        return True
