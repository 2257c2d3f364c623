"""Adapter interface shared by backend implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ...config import ModelInfo, ProviderConfig, RequestMetadata
from ..message import Message
from .stream import BaseStreamIterator
from .toolbridge import ToolSpec


@dataclass(frozen=True, slots=True)
class ResolvedModel:
    """Model id plus the request parameters derived from policy."""

    id: str
    info: ModelInfo
    max_tokens: int | None = None
    temperature: float | None = None


class ModelAdapter(ABC):
    """Abstract interface for backend-specific adapters.

    Adapters never open network connections themselves: the caller hands in a
    client object and the adapter only shapes requests for it and normalizes
    what it streams back.
    """

    name: str = "backend"

    def __init__(self, config: ProviderConfig, client: Any) -> None:
        self._config = config
        self._client = client

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @abstractmethod
    def get_model(self) -> ResolvedModel:
        """Return the selected model id, its capabilities and request parameters."""

    @abstractmethod
    def convert_messages(self, system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
        """Render the conversation in the backend's message format."""

    @abstractmethod
    def build_request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolSpec] | None = None,
        tool_choice: Any = None,
        metadata: RequestMetadata | None = None,
    ) -> dict[str, Any]:
        """Assemble the streaming request without sending it."""

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolSpec] | None = None,
        tool_choice: Any = None,
        metadata: RequestMetadata | None = None,
    ) -> BaseStreamIterator:
        """Return an async iterator that yields canonical streaming events."""

    @abstractmethod
    async def complete_prompt(self, prompt: str) -> str:
        """Run a single non-streaming completion and return its text."""


__all__ = ["ModelAdapter", "ResolvedModel"]
