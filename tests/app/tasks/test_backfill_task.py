"""Tests for the backfill Celery task."""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.models.bot_response import BotResponse
from app.models.user_query import UserQuery
from app.tasks.backfill_task import backfill_legacy_log_task


def _rows():
    start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    common = {
        "legacy_conversation_id": "legacy-1",
        "platform": "slack",
        "platform_user_id": "U1",
        "channel": "C1",
    }
    return [
        {
            **common,
            "legacy_id": "q1",
            "kind": "user_query",
            "content": "hi",
            "created_at": start.isoformat(),
        },
        {
            **common,
            "legacy_id": "r1",
            "kind": "bot_response",
            "content": "hello",
            "created_at": (start + timedelta(seconds=2)).isoformat(),
            "tokens_used": 9,
        },
    ]


def test_backfill_task_runs_reconciler(db):
    @contextmanager
    def fake_session():
        yield db

    with patch("app.tasks.backfill_task.db_session", fake_session):
        report = backfill_legacy_log_task(_rows())

    assert report["conversations"] == 1
    assert report["queries"] == 1
    assert report["responses"] == 1
    response = db.query(BotResponse).one()
    assert response.query_id == db.query(UserQuery).one().id
    assert response.total_tokens == 9


def test_backfill_task_rejects_malformed_rows(db):
    rows = _rows()
    rows[0]["kind"] = "note"

    with patch("app.tasks.backfill_task.db_session") as session:
        assert backfill_legacy_log_task(rows) is None
    session.assert_not_called()
