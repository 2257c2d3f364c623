from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from switchyard.core.adapters.events import ErrorEvent, TextEvent, ToolCallEvent, UsageEvent
from switchyard.core.adapters.chat_stream import ChatStreamIterator
from switchyard.core.adapters.normalize import ChatChunkNormalizer, SdkPartNormalizer
from switchyard.core.adapters.openai_compatible import PartStreamIterator
from switchyard.core.adapters.stream import TransportStreamIterator, coerce_mapping, replay_text
from switchyard.core.errors import AdapterError

from tests.fixtures.fake_clients import FakeAsyncStream, chat_chunk
from tests.harness import collect, event_types, tool_calls


def test_pending_calls_flush_before_usage() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "tool-input-start", "id": "c1", "toolName": "read_file"},
            {"type": "tool-input-delta", "id": "c1", "delta": '{"path":"a"}'},
            {"type": "finish", "totalUsage": {"inputTokens": 10, "outputTokens": 4}},
        ]
    )

    events = collect(PartStreamIterator(lambda: stream))

    assert event_types(events) == ["tool_call_start", "tool_call_delta", "tool_call", "usage"]
    assert events[2] == ToolCallEvent(id="c1", name="read_file", arguments='{"path":"a"}')
    assert events[3] == UsageEvent(input_tokens=10, output_tokens=4)
    assert stream.closed


def test_last_usage_payload_wins() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "finish-step", "usage": {"inputTokens": 1, "outputTokens": 1}},
            {"type": "finish", "totalUsage": {"inputTokens": 7, "outputTokens": 3}},
        ]
    )

    events = collect(PartStreamIterator(lambda: stream))

    assert events == [UsageEvent(input_tokens=7, output_tokens=3)]


def test_stream_without_usage_emits_no_usage_event() -> None:
    stream = FakeAsyncStream([{"type": "text-delta", "text": "hi"}])

    assert collect(PartStreamIterator(lambda: stream)) == [TextEvent(text="hi")]


def test_transport_failure_surfaces_one_error_and_ends(caplog: pytest.LogCaptureFixture) -> None:
    stream = FakeAsyncStream(
        [{"type": "text-delta", "text": "partial"}, {"type": "text-delta", "text": "never"}],
        fail_after=1,
    )

    with caplog.at_level("WARNING", logger="switchyard.core.adapters.stream"):
        events = collect(TransportStreamIterator(lambda: stream, SdkPartNormalizer()))

    assert events == [
        TextEvent(text="partial"),
        ErrorEvent(kind="StreamError", message="connection reset by peer"),
    ]
    assert "backend stream failed" in caplog.text
    assert stream.closed


def test_failure_while_opening_is_reported_in_band() -> None:
    def open_stream() -> FakeAsyncStream:
        raise TimeoutError("request timed out")

    events = collect(TransportStreamIterator(open_stream, SdkPartNormalizer()))

    assert events == [ErrorEvent(kind="StreamError", message="request timed out")]


def test_open_stream_may_return_an_awaitable() -> None:
    stream = FakeAsyncStream([{"type": "text-delta", "text": "async"}])

    async def open_stream() -> FakeAsyncStream:
        return stream

    assert collect(TransportStreamIterator(open_stream, SdkPartNormalizer())) == [TextEvent(text="async")]


def test_non_iterable_stream_becomes_stream_error() -> None:
    events = collect(TransportStreamIterator(lambda: object(), SdkPartNormalizer()))

    [error] = events
    assert error.kind == "StreamError"
    assert "async iteration" in error.message


def test_aclose_discards_pending_calls() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "tool-input-start", "id": "c1", "toolName": "read_file"},
            {"type": "tool-input-delta", "id": "c1", "delta": "{}"},
        ]
    )
    iterator = PartStreamIterator(lambda: stream)

    async def scenario() -> list:
        first = await iterator.__anext__()
        await iterator.aclose()
        rest = [event async for event in iterator]
        return [first, *rest]

    events = asyncio.run(scenario())

    assert event_types(events) == ["tool_call_start"]
    assert stream.closed


def test_coerce_mapping_accepts_sdk_objects() -> None:
    class Dumpable:
        def model_dump(self) -> dict:
            return {"choices": []}

    assert coerce_mapping({"a": 1}, path="chunk") == {"a": 1}
    assert coerce_mapping(Dumpable(), path="chunk") == {"choices": []}
    assert coerce_mapping(SimpleNamespace(type="text", text="x"), path="chunk") == {"type": "text", "text": "x"}

    with pytest.raises(AdapterError, match="chunk must be a mapping"):
        coerce_mapping(42, path="chunk")


def test_replay_text_concatenates_answer_text() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "reasoning-delta", "text": "thinking"},
            {"type": "text-delta", "text": "Hello"},
            {"type": "text-delta", "text": ", world"},
        ]
    )

    text = asyncio.run(replay_text(PartStreamIterator(lambda: stream)))

    assert text == "Hello, world"
    assert stream.closed


def test_replay_text_raises_on_error_event() -> None:
    stream = FakeAsyncStream([{"type": "error", "error": {"message": "overloaded"}}])

    with pytest.raises(AdapterError, match="overloaded"):
        asyncio.run(replay_text(PartStreamIterator(lambda: stream)))


def test_tool_frames_without_ids_are_skipped() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "tool-input-delta", "delta": "x"},
            {"type": "tool-call", "toolName": "read_file", "input": {}},
            {"type": "text-delta", "text": "ok"},
        ]
    )

    assert collect(PartStreamIterator(lambda: stream)) == [TextEvent(text="ok")]
    assert stream.closed


def test_chat_fragment_with_malformed_function_still_completes() -> None:
    stream = FakeAsyncStream([chat_chunk(tool_calls=[{"index": 0, "id": "call_1", "function": "oops"}])])

    events = collect(ChatStreamIterator(lambda: stream, ChatChunkNormalizer()))

    assert event_types(events) == ["tool_call_partial", "tool_call"]
    assert events[-1] == ToolCallEvent(id="call_1", name="unknown_tool", arguments="{}")


def test_normalizer_failure_surfaces_one_error_and_closes(caplog: pytest.LogCaptureFixture) -> None:
    class ExplodingNormalizer:
        def normalize_chunk(self, chunk):
            if chunk.get("type") == "bad":
                raise ValueError("unreadable frame")
            return [TextEvent(text=chunk["text"])]

    stream = FakeAsyncStream([{"type": "ok", "text": "before"}, {"type": "bad"}, {"type": "ok", "text": "after"}])

    with caplog.at_level("WARNING", logger="switchyard.core.adapters.stream"):
        events = collect(TransportStreamIterator(lambda: stream, ExplodingNormalizer()))

    assert events == [
        TextEvent(text="before"),
        ErrorEvent(kind="StreamError", message="unreadable frame"),
    ]
    assert "could not normalize backend frame" in caplog.text
    assert stream.closed


def test_part_stream_interleaving_yields_one_call_per_id() -> None:
    stream = FakeAsyncStream(
        [
            {"type": "tool-input-start", "id": "a", "toolName": "read_file"},
            {"type": "tool-input-delta", "id": "b", "delta": '{"pattern":'},
            {"type": "tool-input-delta", "id": "a", "delta": '{"path":'},
            {"type": "tool-call", "toolCallId": "c", "toolName": "list_files", "input": {"dir": "."}},
            {"type": "text-delta", "text": "checking"},
            {"type": "tool-input-delta", "id": "b", "delta": '"*.py"}'},
            {"type": "tool-input-delta", "id": "a", "delta": '"a.ts"}'},
            {"type": "tool-input-end", "id": "a"},
            {"type": "tool-call", "toolCallId": "a", "toolName": "read_file", "input": {"path": "a.ts"}},
        ]
    )

    events = collect(PartStreamIterator(lambda: stream))

    assert [(call.id, call.arguments) for call in tool_calls(events)] == [
        ("c", '{"dir":"."}'),
        ("a", '{"path":"a.ts"}'),
        ("b", '{"pattern":"*.py"}'),
    ]


def test_chat_stream_interleaved_indices_yield_one_call_per_index() -> None:
    stream = FakeAsyncStream(
        [
            chat_chunk(tool_calls=[{"index": 0, "id": "call_a", "function": {"name": "read_file", "arguments": '{"pa'}}]),
            chat_chunk(tool_calls=[{"index": 1, "function": {"name": "search", "arguments": '{"q"'}}]),
            chat_chunk(tool_calls=[{"index": 0, "function": {"arguments": 'th":"a"}'}}]),
            chat_chunk(tool_calls=[{"index": 1, "function": {"arguments": ':"x"}'}}]),
            chat_chunk(finish_reason="tool_calls"),
        ]
    )

    events = collect(ChatStreamIterator(lambda: stream, ChatChunkNormalizer()))

    assert tool_calls(events) == [
        ToolCallEvent(id="call_a", name="read_file", arguments='{"path":"a"}'),
        ToolCallEvent(id="tool_call_1", name="search", arguments='{"q":"x"}'),
    ]
