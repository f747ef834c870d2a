"""Tests for webhook routes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.adapters.telegram import TelegramAdapter
from app.models.bot_response import BotResponse
from app.models.user_query import UserQuery

FAKE_TOKEN = "123456:AAHdqTcvCH1vGWJxfSeofSAs0K5P"


def minimal_telegram_update(update_id=123, message_id=456, text="hello"):
    return {
        "update_id": update_id,
        "message": {
            "message_id": message_id,
            "from": {
                "id": 789,
                "is_bot": False,
                "first_name": "Test",
                "last_name": "User",
                "language_code": "en",
            },
            "chat": {
                "id": 789,
                "type": "private",
                "first_name": "Test",
                "last_name": "User",
            },
            "date": 1609459200,
            "text": text,
        },
    }


def _settings(secret=None):
    settings = MagicMock()
    settings.telegram_enabled = True
    settings.telegram_bot_token = FAKE_TOKEN
    settings.telegram_webhook_secret = secret
    settings.platform_timeout_seconds = 1.0
    return settings


@pytest.fixture
def telegram_io():
    """Stub the outbound Bot API calls of every TelegramAdapter."""
    with patch.object(
        TelegramAdapter, "send_text", AsyncMock(side_effect=["900", "901", "902"])
    ) as send, patch.object(
        TelegramAdapter, "update_text", AsyncMock(return_value=True)
    ) as update, patch.object(
        TelegramAdapter, "fetch_user_profile", AsyncMock(return_value={})
    ):
        yield send, update


@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_disabled(mock_settings, client: TestClient):
    mock_settings.return_value.telegram_enabled = False
    mock_settings.return_value.telegram_bot_token = None
    mock_settings.return_value.telegram_webhook_secret = None
    resp = client.post("/webhooks/telegram", json=minimal_telegram_update())
    assert resp.status_code == 503


@patch("app.commands.webhooks.telegram_command.get_settings")
@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_invalid_secret(
    mock_base_settings, mock_cmd_settings, client: TestClient
):
    settings = _settings(secret="secret")
    mock_base_settings.return_value = settings
    mock_cmd_settings.return_value = settings
    resp = client.post(
        "/webhooks/telegram",
        json=minimal_telegram_update(),
        headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
    )
    assert resp.status_code == 403


@patch("app.commands.webhooks.telegram_command.get_settings")
@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_unsupported_update(
    mock_base_settings, mock_cmd_settings, client: TestClient
):
    settings = _settings()
    mock_base_settings.return_value = settings
    mock_cmd_settings.return_value = settings
    resp = client.post("/webhooks/telegram", json={"update_id": 1})
    assert resp.status_code == 400


@patch("app.commands.webhooks.telegram_command.get_settings")
@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_non_object_body(
    mock_base_settings, mock_cmd_settings, client: TestClient
):
    settings = _settings()
    mock_base_settings.return_value = settings
    mock_cmd_settings.return_value = settings
    resp = client.post("/webhooks/telegram", json=[1, 2])
    assert resp.status_code == 400


@patch("app.commands.webhooks.telegram_command.get_settings")
@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_success(
    mock_base_settings, mock_cmd_settings, client: TestClient, db, telegram_io
):
    send, update = telegram_io
    settings = _settings()
    mock_base_settings.return_value = settings
    mock_cmd_settings.return_value = settings

    resp = client.post("/webhooks/telegram", json=minimal_telegram_update())

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    [outcome] = body["outcomes"]
    assert outcome["status"] == "processed"

    query = db.query(UserQuery).one()
    response = db.query(BotResponse).one()
    assert query.external_message_id == "456"
    assert response.query_id == query.id
    # Status message "900" edited into the reply
    assert response.external_message_id == "900"
    send.assert_awaited_once()
    update.assert_awaited_once()


@patch("app.commands.webhooks.telegram_command.get_settings")
@patch("app.commands.base_telegram.get_settings")
def test_telegram_webhook_redelivery_is_duplicate(
    mock_base_settings, mock_cmd_settings, client: TestClient, db, telegram_io
):
    settings = _settings()
    mock_base_settings.return_value = settings
    mock_cmd_settings.return_value = settings

    first = client.post("/webhooks/telegram", json=minimal_telegram_update())
    second = client.post("/webhooks/telegram", json=minimal_telegram_update())

    assert first.json()["outcomes"][0]["status"] == "processed"
    assert second.json()["outcomes"][0]["status"] == "duplicate"
    assert db.query(UserQuery).count() == 1
    assert db.query(BotResponse).count() == 1
