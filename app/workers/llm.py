from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.litellm import LiteLLMProvider

from app.config import get_settings
from app.constants.default_system_prompt import DefaultSystemPrompt
from app.core.errors import TransientIOError
from app.infra.logging_config import get_logger

logger = get_logger()


@dataclass
class CompletionResult:
    text: str
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    latency_ms: Optional[int] = None


class CompletionProvider(ABC):
    """AI provider collaborator: prompt plus history in, generated text out."""

    @abstractmethod
    async def complete(
        self, prompt: str, history: Optional[List[dict[str, str]]] = None
    ) -> CompletionResult:
        """Generate a reply. Raises TransientIOError on failure or timeout."""
        ...


def add_the_date_and_time() -> str:
    """Return the current date and time. Use when the user asks for today's date or what day it is."""
    return f"The date and time is {datetime.now()}."


def _history_to_message_list(history: List[dict[str, str]]) -> List[Any]:
    """Convert list of {role, content} to pydantic_ai ModelMessage list for message_history."""
    out: List[Any] = []
    for item in history:
        role = item.get("role", "user")
        content = (item.get("content") or "").strip()
        if not content:
            continue
        if role == "user":
            out.append(ModelRequest(parts=[UserPromptPart(content=content)]))
        elif role == "assistant":
            out.append(ModelResponse(parts=[TextPart(content=content)]))
        elif role == "system":
            out.append(ModelRequest(parts=[SystemPromptPart(content=content)]))
    return out


def _message_list_with_system_prompt(
    system_prompt: str, history: List[dict[str, str]]
) -> List[Any]:
    """Build message_history with system prompt always first, then conversation history."""

    # https://github.com/pydantic/pydantic-ai/issues/4039
    # https://ai.pydantic.dev/agent/#system-prompts
    system_message = ModelRequest(parts=[SystemPromptPart(content=system_prompt)])
    return [system_message] + _history_to_message_list(history)


class LLMRunner(CompletionProvider):
    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        system_prompt: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        provider = LiteLLMProvider(api_key=api_key, api_base=api_base)
        model = OpenAIChatModel(model_name, provider=provider)
        logger.info("Initializing LLM runner with model %s", model_name)
        self._model_name = model_name
        self._system_prompt = system_prompt or DefaultSystemPrompt.CONTENT
        self._timeout = timeout
        self._agent = Agent(model, tools=[add_the_date_and_time])

    async def complete(
        self, prompt: str, history: Optional[List[dict[str, str]]] = None
    ) -> CompletionResult:
        message_history = _message_list_with_system_prompt(
            self._system_prompt, history or []
        )
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._agent.run(prompt, message_history=message_history),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientIOError(
                f"LLM call exceeded {self._timeout}s", code="AI_TIMEOUT"
            ) from e
        except Exception as e:
            raise TransientIOError(f"LLM call failed: {e}", code="AI_PROVIDER_ERROR") from e

        latency_ms = int((time.perf_counter() - started) * 1000)
        usage = result.usage()
        return CompletionResult(
            text=str(result.output),
            model=self._model_name,
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            latency_ms=latency_ms,
        )


def build_llm_runner_from_env() -> LLMRunner:
    settings = get_settings()
    logger.info(
        "LLM runner config: model=%s, api_key=%s, api_base=%s",
        settings.llm_model,
        "set" if settings.litellm_api_key else "not set",
        settings.litellm_api_base or "(default)",
    )
    if not settings.litellm_api_key:
        logger.warning(
            "LITELLM_API_KEY is not set; set it to a valid OpenAI or LiteLLM API key to avoid 401 errors."
        )

    return LLMRunner(
        model_name=settings.llm_model,
        api_key=settings.litellm_api_key,
        api_base=settings.litellm_api_base,
        timeout=settings.llm_timeout_seconds,
    )
