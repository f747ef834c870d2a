"""
Command to handle Telegram webhook updates.

Receives raw webhook data, validates the secret, parses the update into
normalized events and runs each one through ProcessEventCommand.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from app.commands.base_telegram import BaseTelegramCommand
from app.commands.process_event_command import ProcessEventCommand
from app.config import get_settings
from app.services.event_deduplicator import EventDeduplicator
from app.workers.llm import CompletionProvider


class TelegramWebhookCommand(BaseTelegramCommand):
    """
    Command to handle Telegram webhook updates.
    Validates X-Telegram-Bot-Api-Secret-Token, parses the update, processes events.
    """

    def __init__(
        self,
        db: Session,
        completion: Optional[CompletionProvider] = None,
        deduplicator: Optional[EventDeduplicator] = None,
    ) -> None:
        self.db = db
        self.settings = get_settings()
        self._adapter = self.get_telegram_adapter()
        self.completion = completion
        self.deduplicator = deduplicator
        self.logger = logging.getLogger(__name__)

    async def execute(
        self, request: Request, body: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Execute the Telegram webhook: validate secret, parse body, process events.

        Args:
            request: The incoming webhook request (headers for secret validation).
            body: Raw Telegram update payload.

        Returns:
            dict: {"status": "ok", "outcomes": [...]} on success.

        Raises:
            HTTPException: 503 if Telegram not configured, 403 on invalid secret,
                400 on invalid Telegram update.
        """
        if self._adapter is None:
            raise HTTPException(
                status_code=503,
                detail="Telegram integration is not configured or disabled",
            )
        headers = dict(request.headers) if request.headers else {}
        if not self._adapter.verify_webhook(
            self.settings.telegram_webhook_secret, headers
        ):
            raise HTTPException(status_code=403, detail="Invalid webhook secret")
        try:
            events = self._adapter.parse_webhook(body)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("Telegram webhook parse error: %s", e)
            raise HTTPException(
                status_code=400, detail="Invalid Telegram update"
            ) from e

        command = ProcessEventCommand(
            self.db,
            platform=self._adapter,
            completion=self.completion,
            deduplicator=self.deduplicator,
        )
        outcomes = []
        for event in events:
            outcome = await command.execute(event)
            self.logger.info(
                "Telegram %s event from %s: %s",
                event.event_type.value,
                event.external_user_id,
                outcome.status,
            )
            outcomes.append(outcome.model_dump(exclude_none=True))
        return {"status": "ok", "outcomes": outcomes}
