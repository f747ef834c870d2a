"""In-memory chat platform and AI provider for command and router tests."""

from itertools import count
from typing import Any, Optional

import pytest

from app.adapters.base import ChatPlatform
from app.core.errors import TransientIOError
from app.schemas.attributes import Platform
from app.workers.llm import CompletionProvider, CompletionResult


class FakePlatform(ChatPlatform):
    platform = Platform.TELEGRAM

    def __init__(self) -> None:
        self._ids = count(5000)
        self.sent: list[dict[str, Any]] = []
        self.edits: list[dict[str, Any]] = []
        self.profiles: dict[str, dict[str, Any]] = {}
        self.fail_send = False
        self.fail_edit = False
        self.fail_profile = False

    def parse_webhook(self, raw_payload):
        raise NotImplementedError

    async def send_text(self, channel: str, text: str, thread: Optional[str] = None) -> str:
        if self.fail_send:
            raise TransientIOError("send failed")
        message_id = str(next(self._ids))
        self.sent.append(
            {"channel": channel, "text": text, "thread": thread, "id": message_id}
        )
        return message_id

    async def update_text(self, channel: str, external_message_id: str, text: str) -> bool:
        if self.fail_edit:
            return False
        self.edits.append({"channel": channel, "id": external_message_id, "text": text})
        return True

    async def fetch_user_profile(self, external_user_id: str) -> dict[str, Any]:
        if self.fail_profile:
            raise TransientIOError("profile unavailable")
        return self.profiles.get(external_user_id, {})


class FakeCompletion(CompletionProvider):
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.error: Optional[TransientIOError] = None

    async def complete(self, prompt, history=None) -> CompletionResult:
        self.calls.append({"prompt": prompt, "history": list(history or [])})
        if self.error is not None:
            raise self.error
        return CompletionResult(
            text=f"echo: {prompt}",
            model="fake-model",
            prompt_tokens=7,
            completion_tokens=5,
            total_tokens=12,
            latency_ms=3,
        )


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def fake_completion():
    return FakeCompletion()
