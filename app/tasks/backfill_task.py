"""Celery task for replaying a legacy message log."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from app.infra.celery_app import celery_app
from app.infra.logging_config import get_logger
from app.schemas.backfill import LegacyMessage
from app.services.backfill_reconciler import BackfillReconciler
from app.utils.db.db_session_helper import db_session

logger = get_logger("backfill")


@celery_app.task(name="app.tasks.backfill_task.backfill_legacy_log_task")
def backfill_legacy_log_task(rows: list[dict[str, Any]]) -> dict[str, Any] | None:
    """
    Replay legacy log rows in one transaction and return the report.

    Returns None without touching the database when any row is malformed.
    """
    try:
        messages = [LegacyMessage.model_validate(row) for row in rows]
    except ValidationError as e:
        logger.warning("Invalid legacy rows for backfill: %s", e)
        return None

    with db_session() as db:
        report = BackfillReconciler(db).run(messages)
    return report.model_dump()
