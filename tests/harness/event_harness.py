"""Reusable helpers for collecting and inspecting canonical stream events."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence, TypeVar

from switchyard.core.adapters.base import ModelAdapter
from switchyard.core.adapters.events import StreamEvent, ToolCallEvent, event_to_dict
from switchyard.core.adapters.stream import BaseStreamIterator, replay_stream
from switchyard.core.message import Message, MessageRole

EventT = TypeVar("EventT")


def collect(iterator: BaseStreamIterator) -> list[StreamEvent]:
    """Drain a stream iterator synchronously."""

    return asyncio.run(replay_stream(iterator))


def collect_adapter(
    adapter: ModelAdapter,
    *,
    prompt: str | None = None,
    messages: Sequence[Message] | None = None,
    system_prompt: str = "Harness system",
    **options: Any,
) -> list[StreamEvent]:
    """Stream one request through ``adapter`` and collect every event."""

    if (prompt is None) == (messages is None):
        msg = "provide exactly one of 'prompt' or 'messages'"
        raise ValueError(msg)

    resolved = list(messages) if messages is not None else [Message(role=MessageRole.USER, content=prompt)]
    return collect(adapter.stream(system_prompt, resolved, **options))


def of_type(events: Sequence[StreamEvent], event_type: type[EventT]) -> list[EventT]:
    return [event for event in events if isinstance(event, event_type)]


def tool_calls(events: Sequence[StreamEvent]) -> list[ToolCallEvent]:
    return of_type(events, ToolCallEvent)


def event_types(events: Sequence[StreamEvent]) -> list[str]:
    return [event.type for event in events]


def as_dicts(events: Sequence[StreamEvent]) -> list[dict[str, Any]]:
    return [event_to_dict(event) for event in events]


__all__ = ["as_dicts", "collect", "collect_adapter", "event_types", "of_type", "tool_calls"]
