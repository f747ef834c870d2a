"""
Webhook routes for inbound chat platform updates.

Platforms POST raw updates here; we parse, process and return 200.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.commands.webhooks.telegram_command import TelegramWebhookCommand
from app.db import get_db
from app.routers.utils.dependencies import get_completion_provider, get_deduplicator
from app.services.event_deduplicator import EventDeduplicator
from app.workers.llm import CompletionProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/telegram")
async def telegram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    completion: CompletionProvider = Depends(get_completion_provider),
    deduplicator: EventDeduplicator = Depends(get_deduplicator),
) -> dict[str, Any]:
    """
    Receive Telegram webhook updates. Parse, process events, return 200.
    Validate X-Telegram-Bot-Api-Secret-Token if TELEGRAM_WEBHOOK_SECRET is set.
    """
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Telegram webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    command = TelegramWebhookCommand(
        db, completion=completion, deduplicator=deduplicator
    )
    return await command.execute(request, body)
