"""Generic adapter for backends served through the part-stream client."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ...config import ProviderConfig, RequestMetadata
from ..errors import AdapterError
from ..message import Message
from .base import ModelAdapter, ResolvedModel
from .convert import messages_to_sdk
from .events import UsageEvent
from .normalize import SdkPartNormalizer
from .policy import BackendPolicy
from .stream import TransportStreamIterator
from .toolbridge import ToolSpec, map_tool_choice, tool_specs_to_sdk
from .usage import UsageFields, normalize_usage

LOGGER = logging.getLogger(__name__)

StreamFactory = Callable[[Any, Mapping[str, Any]], Any]

_USAGE_KEYS = ("totalUsage", "usage")


def create_part_stream(client: Any, request: Mapping[str, Any]) -> Any:
    """Open a part stream using the provided client."""

    return client.stream_text(**request)


def generate_part_text(client: Any, request: Mapping[str, Any]) -> Any:
    """Run a non-streaming generation using the provided client."""

    return client.generate_text(**request)


class PartStreamIterator(TransportStreamIterator):
    """Part-stream iterator that remembers the last usage payload it saw."""

    def __init__(
        self,
        open_stream: Callable[[], Any],
        *,
        usage_fields: UsageFields | None = None,
    ) -> None:
        super().__init__(open_stream, SdkPartNormalizer())
        self._usage_fields = usage_fields
        self._last_usage: Mapping[str, Any] | None = None

    def _after_chunk(self, chunk: Mapping[str, Any]) -> list:
        for key in _USAGE_KEYS:
            raw = chunk.get(key)
            if isinstance(raw, Mapping):
                self._last_usage = raw
                break
        return []

    def _final_usage(self) -> UsageEvent | None:
        if self._last_usage is None:
            return None
        return normalize_usage(self._last_usage, fields=self._usage_fields)


class OpenAICompatibleAdapter(ModelAdapter):
    """Adapter shared by every backend described by a :class:`BackendPolicy` row.

    The request envelope is a plain mapping handed to ``stream_factory``
    (``client.stream_text(**request)`` by default)::

        {"model", "system", "messages", "temperature", "max_output_tokens",
         "tools", "tool_choice", "provider_options"}

    Optional keys are omitted when they have no value.
    """

    def __init__(
        self,
        config: ProviderConfig,
        client: Any,
        *,
        policy: BackendPolicy,
        stream_factory: StreamFactory | None = None,
        completion_factory: StreamFactory | None = None,
    ) -> None:
        super().__init__(config, client)
        self._policy = policy
        self._stream_factory = stream_factory or create_part_stream
        self._completion_factory = completion_factory or generate_part_text
        self.name = policy.display_name

    @property
    def policy(self) -> BackendPolicy:
        return self._policy

    def get_model(self) -> ResolvedModel:
        model_id, info = self._policy.resolve_model(self._config)
        if not model_id:
            msg = f"{self.name} requires a model id"
            raise AdapterError(msg)

        settings = self._config.settings
        temperature = None
        if info.supports_temperature:
            temperature = self._policy.temperature(model_id, info, settings)

        return ResolvedModel(
            id=model_id,
            info=info,
            max_tokens=self._policy.max_output_tokens(model_id, info, settings),
            temperature=temperature,
        )

    def convert_messages(self, system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
        # The system prompt travels in its own request field.
        return messages_to_sdk(messages)

    def build_request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolSpec] | None = None,
        tool_choice: Any = None,
        metadata: RequestMetadata | None = None,
    ) -> dict[str, Any]:
        model = self.get_model()
        request: dict[str, Any] = {
            "model": model.id,
            "system": system_prompt,
            "messages": self.convert_messages(system_prompt, messages),
        }
        request.update(self._sampling_fields(model, task_id=metadata.task_id if metadata else None))

        sdk_tools = tool_specs_to_sdk(tools)
        if sdk_tools:
            request["tools"] = sdk_tools
            mapped_choice = map_tool_choice(tool_choice)
            if mapped_choice is not None:
                request["tool_choice"] = mapped_choice

        LOGGER.debug(
            "%s request: model=%s messages=%d tools=%d",
            self.name,
            model.id,
            len(request["messages"]),
            len(sdk_tools or ()),
        )
        return request

    def stream(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolSpec] | None = None,
        tool_choice: Any = None,
        metadata: RequestMetadata | None = None,
    ) -> PartStreamIterator:
        request = self.build_request(
            system_prompt,
            messages,
            tools=tools,
            tool_choice=tool_choice,
            metadata=metadata,
        )
        return PartStreamIterator(
            lambda: self._stream_factory(self._client, request),
            usage_fields=self._policy.usage_fields,
        )

    async def complete_prompt(self, prompt: str) -> str:
        model = self.get_model()
        request: dict[str, Any] = {"model": model.id, "prompt": prompt}
        request.update(self._sampling_fields(model))

        try:
            result = self._completion_factory(self._client, request)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            msg = f"{self.name} completion error: {exc}"
            raise AdapterError(msg) from exc

        return _completion_text(result)

    def _sampling_fields(self, model: ResolvedModel, *, task_id: str | None = None) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if model.temperature is not None:
            fields["temperature"] = model.temperature
        if model.max_tokens is not None:
            fields["max_output_tokens"] = model.max_tokens

        provider_options = self._policy.provider_options(
            model.id,
            model.info,
            self._config.settings,
            task_id=task_id,
        )
        if provider_options:
            fields["provider_options"] = provider_options
        return fields


def _completion_text(result: Any) -> str:
    if isinstance(result, Mapping):
        text = result.get("text")
    else:
        text = getattr(result, "text", None)
    return text if isinstance(text, str) else ""


__all__ = [
    "OpenAICompatibleAdapter",
    "PartStreamIterator",
    "create_part_stream",
    "generate_part_text",
]
