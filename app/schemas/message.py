"""Inputs for the message linker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    """Generation metadata and delivery info recorded with a response."""

    external_message_id: Optional[str] = None
    model_used: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    latency_ms: Optional[int] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.error_message is not None


@dataclass
class OrphanResponse:
    """A response replayed from a legacy log whose query is not known."""

    content: str
    created_at: datetime
    meta: ResponseMeta = field(default_factory=ResponseMeta)
