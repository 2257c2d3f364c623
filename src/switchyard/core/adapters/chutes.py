"""Chutes adapter streaming chat-completions chunks with index-keyed tool calls."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ...config import ModelInfo, ProviderConfig, RequestMetadata
from ..errors import AdapterError
from ..message import Message
from .base import ModelAdapter, ResolvedModel
from .chat_stream import ChatStreamIterator, completion_text, create_chat_stream
from .convert import messages_to_openai, messages_to_r1
from .normalize import DEFAULT_REASONING_KEYS, ChatChunkNormalizer
from .openai_compatible import StreamFactory
from .policy import DEEP_SEEK_DEFAULT_TEMPERATURE, get_model_max_output_tokens
from .toolbridge import ToolSpec, tool_choice_to_openai, tool_specs_to_openai
from .toolcalls import ToolCallAccumulator

LOGGER = logging.getLogger(__name__)

CHUTES_BASE_URL = "https://llm.chutes.ai/v1"
CHUTES_DEFAULT_MODEL_ID = "deepseek-ai/DeepSeek-R1-0528"
CHUTES_DEFAULT_MODEL_INFO = ModelInfo(
    context_window=163_840,
    max_tokens=32_768,
    supports_images=False,
    supports_prompt_cache=False,
)
CHUTES_DEFAULT_TEMPERATURE = 0.5
CHUTES_TOOL_CALL_PREFIX = "chutes_tool_call_"


def is_deepseek_r1(model_id: str) -> bool:
    return "DeepSeek-R1" in model_id


class ChutesAdapter(ModelAdapter):
    """Adapter for the Chutes chat-completions endpoint.

    Chutes omits tool call ids on continuation fragments, so calls are keyed
    by their stream index and given ``chutes_tool_call_<index>`` ids when the
    backend never supplies one. DeepSeek-R1 models receive the system prompt
    as a user turn and have their ``<think>`` spans split out as reasoning.
    """

    name = "Chutes"

    def __init__(
        self,
        config: ProviderConfig,
        client: Any,
        *,
        models: Mapping[str, ModelInfo] | None = None,
        stream_factory: StreamFactory | None = None,
        completion_factory: StreamFactory | None = None,
    ) -> None:
        super().__init__(config, client)
        self._models = dict(models or {})
        self._stream_factory = stream_factory or create_chat_stream
        self._completion_factory = completion_factory or create_chat_stream

    def get_model(self) -> ResolvedModel:
        # Explicit ids missing from the catalog are kept as-is with default capabilities.
        model_id = self._config.model_id or CHUTES_DEFAULT_MODEL_ID
        info = self._config.model_info or self._models.get(model_id) or CHUTES_DEFAULT_MODEL_INFO
        settings = self._config.settings

        temperature = None
        if info.supports_temperature:
            default = DEEP_SEEK_DEFAULT_TEMPERATURE if is_deepseek_r1(model_id) else CHUTES_DEFAULT_TEMPERATURE
            temperature = settings.model_temperature if settings.model_temperature is not None else default

        return ResolvedModel(
            id=model_id,
            info=info,
            max_tokens=get_model_max_output_tokens(model_id, info, settings, "openai"),
            temperature=temperature,
        )

    def convert_messages(self, system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
        if is_deepseek_r1(self.get_model().id):
            return messages_to_r1(system_prompt, messages)
        return [{"role": "system", "content": system_prompt}, *messages_to_openai(messages)]

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
        request: dict[str, Any] = {"model": model.id}
        if model.max_tokens is not None:
            request["max_tokens"] = model.max_tokens
        request["messages"] = self.convert_messages(system_prompt, messages)
        request["stream"] = True
        request["stream_options"] = {"include_usage": True}

        openai_tools = tool_specs_to_openai(tools)
        if openai_tools:
            request["tools"] = openai_tools
            choice = tool_choice_to_openai(tool_choice)
            if choice is not None:
                request["tool_choice"] = choice

        if model.temperature is not None:
            request["temperature"] = model.temperature

        LOGGER.debug(
            "Chutes request: model=%s messages=%d tools=%d",
            model.id,
            len(request["messages"]),
            len(openai_tools or ()),
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
    ) -> ChatStreamIterator:
        request = self.build_request(
            system_prompt,
            messages,
            tools=tools,
            tool_choice=tool_choice,
            metadata=metadata,
        )
        r1 = is_deepseek_r1(request["model"])
        normalizer = ChatChunkNormalizer(
            reasoning_keys=() if r1 else DEFAULT_REASONING_KEYS,
            think_tags=r1,
        )
        return ChatStreamIterator(
            lambda: self._stream_factory(self._client, request),
            normalizer,
            accumulator=ToolCallAccumulator(synthetic_id_prefix=CHUTES_TOOL_CALL_PREFIX),
            end_on_finish_reasons=("tool_calls",),
        )

    async def complete_prompt(self, prompt: str) -> str:
        model = self.get_model()
        request: dict[str, Any] = {
            "model": model.id,
            "messages": [{"role": "user", "content": prompt}],
        }
        if model.max_tokens is not None:
            request["max_tokens"] = model.max_tokens
        if model.temperature is not None:
            request["temperature"] = model.temperature

        try:
            response = self._completion_factory(self._client, request)
            if inspect.isawaitable(response):
                response = await response
            return completion_text(response)
        except Exception as exc:
            msg = f"Chutes completion error: {exc}"
            raise AdapterError(msg) from exc


__all__ = [
    "CHUTES_BASE_URL",
    "CHUTES_DEFAULT_MODEL_ID",
    "CHUTES_DEFAULT_MODEL_INFO",
    "ChutesAdapter",
    "is_deepseek_r1",
]
