"""OpenRouter adapter: chat-completions streaming with router-specific request fields."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ...config import ModelInfo, ProviderConfig, RequestMetadata, RoutingPreferences
from ..errors import AdapterError
from ..message import Message
from .base import ModelAdapter, ResolvedModel
from .chat_stream import ChatStreamIterator, completion_text
from .convert import messages_to_openai, messages_to_r1
from .events import StreamEvent
from .normalize import ChatChunkNormalizer
from .openai_compatible import StreamFactory
from .policy import (
    DEEP_SEEK_DEFAULT_TEMPERATURE,
    get_model_max_output_tokens,
    select_temperature,
    should_use_reasoning_effort,
)
from .toolbridge import ToolSpec, tool_choice_to_openai, tool_specs_to_openai
from .usage import UsageFields

LOGGER = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL_ID = "anthropic/claude-sonnet-4.5"
OPENROUTER_DEFAULT_MODEL_INFO = ModelInfo(
    context_window=1_000_000,
    max_tokens=64_000,
    supports_images=True,
    supports_prompt_cache=True,
)
OPENROUTER_REASONING_KEYS = ("reasoning", "reasoning_content")
OPENROUTER_USAGE_FIELDS = UsageFields(reports_cost=True)

ANTHROPIC_BETA_HEADERS = {"x-anthropic-beta": "fine-grained-tool-streaming-2025-05-14"}
GEMINI_REASONING_EXCLUDED_MODELS = frozenset({"google/gemini-2.5-pro-preview", "google/gemini-2.5-pro"})
R1_TOP_P = 0.95
MIDDLE_OUT_TRANSFORM = "middle-out"
GEMINI_SKIPPED_SIGNATURE = "skip_thought_signature_validator"

# Request fields the chat-completions client does not know; sent as extra body.
_ROUTER_BODY_FIELDS = ("provider", "transforms", "reasoning")


def create_openrouter_stream(client: Any, request: Mapping[str, Any]) -> Any:
    """Send ``request`` through a chat-completions client, moving router fields to ``extra_body``."""

    payload = dict(request)
    extra_body = {key: payload.pop(key) for key in _ROUTER_BODY_FIELDS if key in payload}
    if extra_body:
        payload["extra_body"] = extra_body
    return client.chat.completions.create(**payload)


def uses_r1_format(model_id: str) -> bool:
    return model_id.startswith("deepseek/deepseek-r1") or model_id == "perplexity/sonar-reasoning"


def provider_params(routing: RoutingPreferences) -> dict[str, Any] | None:
    """Translate routing preferences into the router's ``provider`` field."""

    if routing.specific_provider:
        params: dict[str, Any] = {
            "order": [routing.specific_provider],
            "only": [routing.specific_provider],
            "allow_fallbacks": False,
            "data_collection": routing.data_collection,
            "zdr": routing.zdr,
        }
    elif routing.data_collection or routing.sort or routing.zdr:
        params = {
            "data_collection": routing.data_collection,
            "sort": routing.sort,
            "zdr": routing.zdr,
        }
    else:
        return None
    return {key: value for key, value in params.items() if value is not None}


class OpenRouterStreamIterator(ChatStreamIterator):
    """Chat stream that also accumulates ``reasoning_details`` fragments.

    Fragments are keyed by ``"<type>-<index>"``: text, summary and data
    concatenate while id, format and signature take the latest value. The
    merged entries are read from :attr:`reasoning_details` once the stream
    has been consumed, so concurrent streams never share state.
    """

    def __init__(self, open_stream: Callable[[], Any], normalizer: ChatChunkNormalizer) -> None:
        super().__init__(open_stream, normalizer, usage_fields=OPENROUTER_USAGE_FIELDS)
        self._reasoning_details: dict[str, dict[str, Any]] = {}

    @property
    def reasoning_details(self) -> list[dict[str, Any]] | None:
        if not self._reasoning_details:
            return None
        return [dict(detail) for detail in self._reasoning_details.values()]

    def _after_chunk(self, chunk: Mapping[str, Any]) -> list[StreamEvent]:
        choices = chunk.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            delta = choices[0].get("delta")
            details = delta.get("reasoning_details") if isinstance(delta, Mapping) else None
            if isinstance(details, list):
                for detail in details:
                    if isinstance(detail, Mapping):
                        self._accumulate(detail)
        return super()._after_chunk(chunk)

    def _accumulate(self, detail: Mapping[str, Any]) -> None:
        index = detail.get("index") or 0
        key = f"{detail.get('type')}-{index}"
        existing = self._reasoning_details.get(key)
        if existing is None:
            entry = {"type": detail.get("type"), "index": index}
            for field in ("text", "summary", "data", "id", "format", "signature"):
                if detail.get(field) is not None:
                    entry[field] = detail[field]
            self._reasoning_details[key] = entry
            return

        for field in ("text", "summary", "data"):
            if detail.get(field) is not None:
                existing[field] = existing.get(field, "") + detail[field]
        for field in ("id", "format", "signature"):
            if detail.get(field) is not None:
                existing[field] = detail[field]


class OpenRouterAdapter(ModelAdapter):
    """Adapter for the OpenRouter chat-completions endpoint."""

    name = "OpenRouter"

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
        self._stream_factory = stream_factory or create_openrouter_stream
        self._completion_factory = completion_factory or create_openrouter_stream

    def get_model(self) -> ResolvedModel:
        model_id = self._config.model_id or OPENROUTER_DEFAULT_MODEL_ID
        info = self._config.model_info or self._models.get(model_id) or OPENROUTER_DEFAULT_MODEL_INFO
        settings = self._config.settings

        temperature = None
        if info.supports_temperature:
            temperature = select_temperature(
                model_id,
                info,
                settings,
                default_temperature=DEEP_SEEK_DEFAULT_TEMPERATURE if uses_r1_format(model_id) else 0,
            )

        return ResolvedModel(
            id=model_id,
            info=info,
            max_tokens=get_model_max_output_tokens(model_id, info, settings, "openrouter"),
            temperature=temperature,
        )

    def reasoning_params(self, model: ResolvedModel) -> dict[str, Any] | None:
        settings = self._config.settings
        if should_use_reasoning_effort(model.info, settings):
            return {"effort": settings.reasoning_effort or model.info.reasoning_effort}
        # Gemini 2.5 Pro streams reasoning unless told otherwise.
        if model.id in GEMINI_REASONING_EXCLUDED_MODELS:
            return {"exclude": True}
        return None

    def convert_messages(self, system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
        if uses_r1_format(self.get_model().id):
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
        settings = self._config.settings

        converted = self.convert_messages(system_prompt, messages)
        if model.id.startswith("google/gemini") and metadata is not None and metadata.tool_protocol == "native":
            converted = _with_skipped_gemini_signatures(converted)

        request: dict[str, Any] = {"model": model.id}
        if model.max_tokens:
            request["max_tokens"] = model.max_tokens
        if model.temperature is not None:
            request["temperature"] = model.temperature
        if uses_r1_format(model.id):
            request["top_p"] = R1_TOP_P
        request["messages"] = converted
        request["stream"] = True
        request["stream_options"] = {"include_usage": True}
        request["parallel_tool_calls"] = False
        request.update(self._router_fields(model))
        if settings.routing.use_middle_out_transform:
            request["transforms"] = [MIDDLE_OUT_TRANSFORM]

        openai_tools = tool_specs_to_openai(tools)
        if openai_tools:
            request["tools"] = openai_tools
            choice = tool_choice_to_openai(tool_choice)
            if choice is not None:
                request["tool_choice"] = choice

        LOGGER.debug(
            "OpenRouter request: model=%s messages=%d tools=%d",
            model.id,
            len(converted),
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
    ) -> OpenRouterStreamIterator:
        request = self.build_request(
            system_prompt,
            messages,
            tools=tools,
            tool_choice=tool_choice,
            metadata=metadata,
        )
        normalizer = ChatChunkNormalizer(
            reasoning_keys=OPENROUTER_REASONING_KEYS,
            first_present_key=False,
            error_prefix="OpenRouter API Error",
        )
        return OpenRouterStreamIterator(lambda: self._stream_factory(self._client, request), normalizer)

    async def complete_prompt(self, prompt: str) -> str:
        model = self.get_model()
        request: dict[str, Any] = {"model": model.id}
        if model.max_tokens:
            request["max_tokens"] = model.max_tokens
        if model.temperature is not None:
            request["temperature"] = model.temperature
        request["messages"] = [{"role": "user", "content": prompt}]
        request["stream"] = False
        request.update(self._router_fields(model))

        try:
            response = self._completion_factory(self._client, request)
            if inspect.isawaitable(response):
                response = await response
        except Exception as exc:
            msg = f"OpenRouter completion error: {exc}"
            raise AdapterError(msg) from exc

        error = response.get("error") if isinstance(response, Mapping) else getattr(response, "error", None)
        if error:
            raise AdapterError(_error_message(error))
        return completion_text(response)

    def _router_fields(self, model: ResolvedModel) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        provider = provider_params(self._config.settings.routing)
        if provider:
            fields["provider"] = provider
        reasoning = self.reasoning_params(model)
        if reasoning:
            fields["reasoning"] = reasoning
        if model.id.startswith("anthropic/"):
            fields["extra_headers"] = dict(ANTHROPIC_BETA_HEADERS)
        return fields


def _with_skipped_gemini_signatures(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Give assistant tool calls placeholder encrypted reasoning so Gemini accepts the replay."""

    patched: list[dict[str, Any]] = []
    for payload in messages:
        tool_calls = payload.get("tool_calls")
        existing = list(payload.get("reasoning_details") or [])
        if (
            payload.get("role") != "assistant"
            or not tool_calls
            or any(detail.get("type") == "reasoning.encrypted" for detail in existing)
        ):
            patched.append(payload)
            continue

        placeholders = [
            {
                "id": call["id"],
                "type": "reasoning.encrypted",
                "data": GEMINI_SKIPPED_SIGNATURE,
                "format": "google-gemini-v1",
                "index": len(existing) + position,
            }
            for position, call in enumerate(tool_calls)
        ]
        patched.append({**payload, "reasoning_details": [*existing, *placeholders]})
    return patched


def _error_message(error: Any) -> str:
    if not isinstance(error, Mapping):
        return f"OpenRouter API Error: {error}"
    metadata = error.get("metadata")
    raw = metadata.get("raw") if isinstance(metadata, Mapping) else None
    return f"OpenRouter API Error {error.get('code')}: {raw or error.get('message')}"


__all__ = [
    "OPENROUTER_BASE_URL",
    "OPENROUTER_DEFAULT_MODEL_ID",
    "OPENROUTER_DEFAULT_MODEL_INFO",
    "OpenRouterAdapter",
    "OpenRouterStreamIterator",
    "create_openrouter_stream",
    "provider_params",
    "uses_r1_format",
]
