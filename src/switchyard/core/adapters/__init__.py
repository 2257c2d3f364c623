"""Adapter interfaces, stream normalization and backend implementations."""

from __future__ import annotations

from .base import ModelAdapter, ResolvedModel
from .chutes import ChutesAdapter
from .convert import consolidate_reasoning_details, messages_to_openai, messages_to_r1, messages_to_sdk
from .events import (
    ErrorEvent,
    GroundingEvent,
    GroundingSource,
    ReasoningEvent,
    StreamEvent,
    TextEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallEvent,
    ToolCallPartialEvent,
    ToolCallStartEvent,
    UsageEvent,
    event_to_dict,
)
from .normalize import (
    ChatChunkNormalizer,
    SdkPartNormalizer,
    ThinkTagMatcher,
    normalize_chat_chunk,
    normalize_sdk_part,
)
from .openai_compatible import OpenAICompatibleAdapter
from .openrouter import OpenRouterAdapter
from .policy import BackendPolicy, get_model_max_output_tokens, select_temperature
from .registry import BACKENDS, create_adapter
from .stream import BaseStreamIterator, StreamNormalizer, replay_stream, replay_text
from .toolbridge import ToolSpec
from .toolcalls import ToolCallAccumulator
from .usage import UsageFields, normalize_usage

__all__ = [
    "BACKENDS",
    "BackendPolicy",
    "BaseStreamIterator",
    "ChatChunkNormalizer",
    "ChutesAdapter",
    "ErrorEvent",
    "GroundingEvent",
    "GroundingSource",
    "ModelAdapter",
    "OpenAICompatibleAdapter",
    "OpenRouterAdapter",
    "ReasoningEvent",
    "ResolvedModel",
    "SdkPartNormalizer",
    "StreamEvent",
    "StreamNormalizer",
    "TextEvent",
    "ThinkTagMatcher",
    "ToolCallAccumulator",
    "ToolCallDeltaEvent",
    "ToolCallEndEvent",
    "ToolCallEvent",
    "ToolCallPartialEvent",
    "ToolCallStartEvent",
    "ToolSpec",
    "UsageEvent",
    "UsageFields",
    "consolidate_reasoning_details",
    "create_adapter",
    "event_to_dict",
    "get_model_max_output_tokens",
    "messages_to_openai",
    "messages_to_r1",
    "messages_to_sdk",
    "normalize_chat_chunk",
    "normalize_sdk_part",
    "normalize_usage",
    "replay_stream",
    "replay_text",
    "select_temperature",
]
