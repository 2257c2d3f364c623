"""Reassemble fragmented tool calls into exactly-once complete events.

Backends narrate tool calls in several incompatible ways:

* a single complete ``tool_call`` event carrying id, name and arguments;
* ``tool_call_start`` / ``tool_call_delta``\\* / ``tool_call_end``;
* start and deltas with no end before the stream closes;
* ``tool_call_partial`` fragments keyed by stream index, often without an id.

:class:`ToolCallAccumulator` consumes normalized events for one stream and
converges all of them on a single :class:`ToolCallEvent` per logical call.
Incremental events still pass through so consumers can render progress.
"""

from __future__ import annotations

from dataclasses import dataclass

from .events import (
    StreamEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallEvent,
    ToolCallPartialEvent,
    ToolCallStartEvent,
)

UNKNOWN_TOOL_NAME = "unknown_tool"
EMPTY_ARGUMENTS = "{}"


@dataclass(slots=True)
class _PendingToolCall:
    """Arguments accumulated so far for one call id."""

    tool_name: str | None = None
    argument_buffer: str = ""


class ToolCallAccumulator:
    """Per-stream state machine tracking pending and emitted tool calls.

    Instances are owned by exactly one stream iterator and discarded with it.
    Dict insertion order doubles as first-sighting order for the end-of-stream
    flush.
    """

    def __init__(self, *, synthetic_id_prefix: str = "tool_call_") -> None:
        self._synthetic_id_prefix = synthetic_id_prefix
        self._pending: dict[str, _PendingToolCall] = {}
        self._emitted_ids: set[str] = set()
        self._started_ids: set[str] = set()
        self._ended_ids: set[str] = set()
        self._ids_by_index: dict[int, str] = {}

    @property
    def pending_ids(self) -> tuple[str, ...]:
        """Ids with buffered arguments that have not been flushed yet."""

        return tuple(self._pending)

    def observe(self, event: StreamEvent) -> list[StreamEvent]:
        """Return the events to emit in response to one normalized event."""

        if isinstance(event, ToolCallEvent):
            return self._on_complete(event)
        if isinstance(event, ToolCallStartEvent):
            return self._on_start(event)
        if isinstance(event, ToolCallDeltaEvent):
            return self._on_delta(event)
        if isinstance(event, ToolCallEndEvent):
            return self._on_end(event.id)
        if isinstance(event, ToolCallPartialEvent):
            return self._on_partial(event)
        return [event]

    def end_pending(self) -> list[StreamEvent]:
        """Close every pending call, emitting an end marker and the complete call."""

        events: list[StreamEvent] = []
        for call_id in list(self._pending):
            events.extend(self._on_end(call_id))
        return events

    def finish(self) -> list[StreamEvent]:
        """Flush calls that never received an end marker, in first-sighting order."""

        events: list[StreamEvent] = []
        for call_id in list(self._pending):
            flushed = self._flush(call_id)
            if flushed is not None:
                events.append(flushed)
        return events

    def resolve_index(self, index: int, call_id: str | None) -> str:
        """Map a stream index to a stable call id.

        A real id always wins and is remembered for the index. Otherwise the
        remembered id is reused, or a synthetic one is minted once.
        """

        if call_id:
            self._ids_by_index[index] = call_id
            return call_id

        existing = self._ids_by_index.get(index)
        if existing is not None:
            return existing

        synthetic = f"{self._synthetic_id_prefix}{index}"
        self._ids_by_index[index] = synthetic
        return synthetic

    def _on_complete(self, event: ToolCallEvent) -> list[StreamEvent]:
        if event.id in self._emitted_ids:
            self._pending.pop(event.id, None)
            return []
        self._emitted_ids.add(event.id)
        self._pending.pop(event.id, None)
        return [event]

    def _on_start(self, event: ToolCallStartEvent) -> list[StreamEvent]:
        if event.id in self._started_ids or event.id in self._emitted_ids:
            return []
        self._started_ids.add(event.id)

        entry = self._pending.setdefault(event.id, _PendingToolCall())
        if event.name:
            entry.tool_name = event.name
        return [event]

    def _on_delta(self, event: ToolCallDeltaEvent) -> list[StreamEvent]:
        if event.id in self._emitted_ids:
            return []
        entry = self._pending.setdefault(event.id, _PendingToolCall())
        entry.argument_buffer += event.delta
        return [event]

    def _on_end(self, call_id: str) -> list[StreamEvent]:
        if call_id in self._ended_ids:
            return []
        self._ended_ids.add(call_id)

        events: list[StreamEvent] = [ToolCallEndEvent(id=call_id)]
        flushed = self._flush(call_id)
        if flushed is not None:
            events.append(flushed)
        return events

    def _on_partial(self, event: ToolCallPartialEvent) -> list[StreamEvent]:
        call_id = self.resolve_index(event.index, event.id)
        if call_id in self._emitted_ids:
            return []

        entry = self._pending.setdefault(call_id, _PendingToolCall())
        if event.name:
            entry.tool_name = event.name
        if event.arguments:
            entry.argument_buffer += event.arguments

        return [
            ToolCallPartialEvent(
                index=event.index,
                id=call_id,
                name=event.name,
                arguments=event.arguments,
            )
        ]

    def _flush(self, call_id: str) -> ToolCallEvent | None:
        entry = self._pending.pop(call_id, None)
        if call_id in self._emitted_ids:
            return None
        self._emitted_ids.add(call_id)

        name = UNKNOWN_TOOL_NAME
        arguments = EMPTY_ARGUMENTS
        if entry is not None:
            name = entry.tool_name or UNKNOWN_TOOL_NAME
            arguments = entry.argument_buffer or EMPTY_ARGUMENTS
        return ToolCallEvent(id=call_id, name=name, arguments=arguments)


__all__ = ["EMPTY_ARGUMENTS", "UNKNOWN_TOOL_NAME", "ToolCallAccumulator"]
