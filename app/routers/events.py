"""
Events API: accept already-normalized inbound events.

Used by gateways that do their own platform parsing. Replies are delivered
through the platform adapter when one is configured, otherwise only stored.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.commands.process_event_command import ProcessEventCommand
from app.core.errors import ConstraintViolationError, NotFoundError
from app.db import get_db
from app.routers.utils.dependencies import (
    get_completion_provider,
    get_deduplicator,
    get_platform_registry,
)
from app.schemas.events import EventOutcome, InboundEvent
from app.services.event_deduplicator import EventDeduplicator
from app.workers.llm import CompletionProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOutcome)
async def process_event(
    event: InboundEvent,
    db: Session = Depends(get_db),
    completion: CompletionProvider = Depends(get_completion_provider),
    deduplicator: EventDeduplicator = Depends(get_deduplicator),
) -> EventOutcome:
    """Process one normalized inbound event."""
    platform = get_platform_registry().get(event.platform)
    command = ProcessEventCommand(
        db, platform=platform, completion=completion, deduplicator=deduplicator
    )
    try:
        return await command.execute(event)
    except ConstraintViolationError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
