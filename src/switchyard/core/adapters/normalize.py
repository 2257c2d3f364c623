"""Stateless mappings from raw backend frames to canonical events."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, List

from ..message import dumps_json
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
)
from .stream import StreamNormalizer

LOGGER = logging.getLogger(__name__)

DEFAULT_REASONING_KEYS = ("reasoning_content", "reasoning")

# Part types that only mark lifecycle boundaries and carry nothing to surface.
LIFECYCLE_PART_TYPES = frozenset(
    {
        "start",
        "finish",
        "abort",
        "start-step",
        "finish-step",
        "text-start",
        "text-end",
        "reasoning-start",
        "reasoning-end",
        "file",
        "tool-result",
        "tool-error",
        "raw",
    }
)

TOOL_PART_TYPES = frozenset({"tool-input-start", "tool-input-delta", "tool-input-end", "tool-call"})


def normalize_sdk_part(part: Mapping[str, Any]) -> list[StreamEvent]:
    """Map one part-stream frame to zero or more canonical events."""

    part_type = part.get("type")

    if part_type in ("text", "text-delta"):
        return [TextEvent(text=part.get("text") or "")]

    if part_type in ("reasoning", "reasoning-delta"):
        return [ReasoningEvent(text=part.get("text") or "")]

    if part_type in TOOL_PART_TYPES:
        return _tool_part_events(part_type, part)

    if part_type == "source":
        url = part.get("url")
        if not url:
            return []
        source = GroundingSource(title=part.get("title") or "Source", url=url)
        return [GroundingEvent(sources=(source,))]

    if part_type == "error":
        return [ErrorEvent(kind="StreamError", message=_error_message(part.get("error")))]

    if part_type not in LIFECYCLE_PART_TYPES:
        LOGGER.debug("ignoring unknown stream part type %r", part_type)
    return []


def _tool_part_events(part_type: str, part: Mapping[str, Any]) -> list[StreamEvent]:
    call_id = part.get("toolCallId" if part_type == "tool-call" else "id")
    if not isinstance(call_id, str) or not call_id:
        LOGGER.debug("dropping %s part without a tool call id", part_type)
        return []

    if part_type == "tool-input-start":
        return [ToolCallStartEvent(id=call_id, name=part.get("toolName") or "")]
    if part_type == "tool-input-delta":
        return [ToolCallDeltaEvent(id=call_id, delta=part.get("delta") or "")]
    if part_type == "tool-input-end":
        return [ToolCallEndEvent(id=call_id)]

    raw_input = part.get("input")
    arguments = raw_input if isinstance(raw_input, str) else dumps_json(raw_input)
    return [ToolCallEvent(id=call_id, name=part.get("toolName") or "", arguments=arguments)]


def normalize_chat_chunk(
    chunk: Mapping[str, Any],
    *,
    reasoning_keys: Sequence[str] = DEFAULT_REASONING_KEYS,
    first_present_key: bool = True,
    error_prefix: str | None = None,
) -> list[StreamEvent]:
    """Map one chat-completions chunk to canonical events.

    Within a chunk, reasoning is emitted before tool fragments and tool
    fragments before answer text. An in-band ``error`` object replaces
    everything else in the chunk; ``error_prefix`` is prepended to its message.

    Without ``reasoning_details``, at most one of ``reasoning_keys`` supplies
    reasoning. With ``first_present_key`` the first key present in the delta
    decides, even when its value is null or blank; otherwise the first key
    holding non-blank text wins.
    """

    error = chunk.get("error")
    if error is not None:
        message = _provider_error_message(error)
        if error_prefix:
            message = f"{error_prefix} {message}"
        return [ErrorEvent(kind="ProviderError", message=message)]

    delta = _first_delta(chunk)
    if not delta:
        return []

    events: list[StreamEvent] = []

    details = delta.get("reasoning_details")
    if isinstance(details, list) and details:
        for detail in details:
            text = _reasoning_detail_text(detail)
            if text:
                events.append(ReasoningEvent(text=text))
    else:
        for key in reasoning_keys:
            if key not in delta:
                continue
            value = delta.get(key)
            if isinstance(value, str) and value.strip():
                events.append(ReasoningEvent(text=value))
                break
            if first_present_key:
                break

    tool_calls = delta.get("tool_calls")
    if isinstance(tool_calls, list):
        for position, tool_call in enumerate(tool_calls):
            if not isinstance(tool_call, Mapping):
                continue
            index = tool_call.get("index")
            function_payload = tool_call.get("function")
            if not isinstance(function_payload, Mapping):
                function_payload = {}
            events.append(
                ToolCallPartialEvent(
                    index=index if isinstance(index, int) else position,
                    id=tool_call.get("id") or None,
                    name=function_payload.get("name") or None,
                    arguments=function_payload.get("arguments") or None,
                )
            )

    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(TextEvent(text=content))

    return events


def finish_reason(chunk: Mapping[str, Any]) -> str | None:
    """Return the first choice's finish reason, if the chunk carries one."""

    choice = _first_choice(chunk)
    if choice is None:
        return None
    reason = choice.get("finish_reason")
    return reason if isinstance(reason, str) and reason else None


def _first_choice(chunk: Mapping[str, Any]) -> Mapping[str, Any] | None:
    choices = chunk.get("choices")
    if not isinstance(choices, Sequence) or isinstance(choices, str) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, Mapping) else None


def _first_delta(chunk: Mapping[str, Any]) -> Mapping[str, Any] | None:
    choice = _first_choice(chunk)
    if choice is None:
        return None
    delta = choice.get("delta")
    return delta if isinstance(delta, Mapping) else None


def _reasoning_detail_text(detail: Any) -> str | None:
    if not isinstance(detail, Mapping):
        return None
    detail_type = detail.get("type")
    if detail_type == "reasoning.text" and isinstance(detail.get("text"), str):
        return detail["text"]
    if detail_type == "reasoning.summary" and isinstance(detail.get("summary"), str):
        return detail["summary"]
    return None


def _error_message(error: Any) -> str:
    if isinstance(error, Mapping):
        message = error.get("message")
        if isinstance(message, str):
            return message
    return str(error)


def _provider_error_message(error: Any) -> str:
    if not isinstance(error, Mapping):
        return str(error)
    metadata = error.get("metadata")
    raw = metadata.get("raw") if isinstance(metadata, Mapping) else None
    message = raw or error.get("message") or "Unknown error"
    code = error.get("code")
    if code is None:
        return str(message)
    return f"{code}: {message}"


class ThinkTagMatcher:
    """Split streamed text on ``<think>…</think>`` spans.

    Text inside the tags becomes reasoning and text outside stays answer text.
    Tags may be split across any number of chunks; a trailing fragment that
    could start a tag is held back until the next chunk or :meth:`final`.
    """

    def __init__(self, tag: str = "think") -> None:
        self._open = f"<{tag}>"
        self._close = f"</{tag}>"
        self._buffer = ""
        self._inside = False

    def update(self, text: str) -> list[StreamEvent]:
        self._buffer += text
        events: list[StreamEvent] = []

        while True:
            marker = self._close if self._inside else self._open
            position = self._buffer.find(marker)
            if position == -1:
                keep = _partial_marker_length(self._buffer, marker)
                cut = len(self._buffer) - keep
                self._emit(events, self._buffer[:cut])
                self._buffer = self._buffer[cut:]
                return events

            self._emit(events, self._buffer[:position])
            self._buffer = self._buffer[position + len(marker) :]
            self._inside = not self._inside

    def final(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        self._emit(events, self._buffer)
        self._buffer = ""
        return events

    def _emit(self, events: list[StreamEvent], text: str) -> None:
        if not text:
            return
        events.append(ReasoningEvent(text=text) if self._inside else TextEvent(text=text))


def _partial_marker_length(buffer: str, marker: str) -> int:
    for length in range(min(len(marker) - 1, len(buffer)), 0, -1):
        if buffer.endswith(marker[:length]):
            return length
    return 0


class SdkPartNormalizer(StreamNormalizer):
    """Normalizer for part-stream frames."""

    def normalize_chunk(self, chunk: Mapping[str, Any]) -> List[StreamEvent]:
        return normalize_sdk_part(chunk)


class ChatChunkNormalizer(StreamNormalizer):
    """Normalizer for chat-completions chunks, optionally splitting think tags."""

    def __init__(
        self,
        *,
        reasoning_keys: Sequence[str] = DEFAULT_REASONING_KEYS,
        first_present_key: bool = True,
        think_tags: bool = False,
        error_prefix: str | None = None,
    ) -> None:
        self._reasoning_keys = tuple(reasoning_keys)
        self._first_present_key = first_present_key
        self._error_prefix = error_prefix
        self._matcher = ThinkTagMatcher() if think_tags else None

    def normalize_chunk(self, chunk: Mapping[str, Any]) -> List[StreamEvent]:
        events = normalize_chat_chunk(
            chunk,
            reasoning_keys=self._reasoning_keys,
            first_present_key=self._first_present_key,
            error_prefix=self._error_prefix,
        )
        if self._matcher is None:
            return events

        split: List[StreamEvent] = []
        for event in events:
            if isinstance(event, TextEvent):
                split.extend(self._matcher.update(event.text))
            else:
                split.append(event)
        return split

    def flush(self) -> List[StreamEvent]:
        if self._matcher is None:
            return []
        return self._matcher.final()


__all__ = [
    "ChatChunkNormalizer",
    "DEFAULT_REASONING_KEYS",
    "LIFECYCLE_PART_TYPES",
    "SdkPartNormalizer",
    "TOOL_PART_TYPES",
    "ThinkTagMatcher",
    "finish_reason",
    "normalize_chat_chunk",
    "normalize_sdk_part",
]
