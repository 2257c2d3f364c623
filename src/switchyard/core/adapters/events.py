"""Canonical streaming event schema produced by every backend adapter."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Union


@dataclass(frozen=True, slots=True)
class TextEvent:
    """Incremental assistant answer text."""

    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True, slots=True)
class ReasoningEvent:
    """Incremental reasoning ("thinking") text, distinct from the answer."""

    type: ClassVar[str] = "reasoning"

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallStartEvent:
    """A tool call began streaming its arguments."""

    type: ClassVar[str] = "tool_call_start"

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class ToolCallDeltaEvent:
    """A fragment of tool call argument text."""

    type: ClassVar[str] = "tool_call_delta"

    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class ToolCallEndEvent:
    """The backend finished streaming arguments for a tool call."""

    type: ClassVar[str] = "tool_call_end"

    id: str


@dataclass(frozen=True, slots=True)
class ToolCallEvent:
    """A complete, ready-to-execute tool call.

    ``arguments`` is the raw JSON text exactly as reconstructed from the
    stream. It is not parsed or validated here.
    """

    type: ClassVar[str] = "tool_call"

    id: str
    name: str
    arguments: str


@dataclass(frozen=True, slots=True)
class ToolCallPartialEvent:
    """Legacy incremental tool call fragment keyed by stream position."""

    type: ClassVar[str] = "tool_call_partial"

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True, slots=True)
class UsageEvent:
    """Token and cost counters reported once per stream."""

    type: ClassVar[str] = "usage"

    input_tokens: int
    output_tokens: int
    cache_write_tokens: int | None = None
    cache_read_tokens: int | None = None
    reasoning_tokens: int | None = None
    total_cost: float | None = None


@dataclass(frozen=True, slots=True)
class GroundingSource:
    """A citation attached to a grounded answer."""

    title: str
    url: str
    snippet: str | None = None


@dataclass(frozen=True, slots=True)
class GroundingEvent:
    """Sources the backend consulted while answering."""

    type: ClassVar[str] = "grounding"

    sources: tuple[GroundingSource, ...]


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Terminal error surfaced in-band instead of raising."""

    type: ClassVar[str] = "error"

    kind: str
    message: str


StreamEvent = Union[
    TextEvent,
    ReasoningEvent,
    ToolCallStartEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallEvent,
    ToolCallPartialEvent,
    UsageEvent,
    GroundingEvent,
    ErrorEvent,
]

_WIRE_NAMES = {
    "input_tokens": "inputTokens",
    "output_tokens": "outputTokens",
    "cache_write_tokens": "cacheWriteTokens",
    "cache_read_tokens": "cacheReadTokens",
    "reasoning_tokens": "reasoningTokens",
    "total_cost": "totalCost",
}


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Serialize an event into a JSON-ready mapping, omitting unset optionals."""

    payload: dict[str, Any] = {"type": event.type}
    for item in fields(event):
        value = getattr(event, item.name)
        if value is None:
            continue
        if isinstance(event, GroundingEvent) and item.name == "sources":
            value = [_source_to_dict(source) for source in value]
        payload[_WIRE_NAMES.get(item.name, item.name)] = value
    return payload


def _source_to_dict(source: GroundingSource) -> dict[str, str]:
    payload = {"title": source.title, "url": source.url}
    if source.snippet is not None:
        payload["snippet"] = source.snippet
    return payload


__all__ = [
    "ErrorEvent",
    "GroundingEvent",
    "GroundingSource",
    "ReasoningEvent",
    "StreamEvent",
    "TextEvent",
    "ToolCallDeltaEvent",
    "ToolCallEndEvent",
    "ToolCallEvent",
    "ToolCallPartialEvent",
    "ToolCallStartEvent",
    "UsageEvent",
    "event_to_dict",
]
