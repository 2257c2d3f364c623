from __future__ import annotations

import asyncio

import pytest

from switchyard.core.adapters.chutes import CHUTES_DEFAULT_MODEL_ID, ChutesAdapter, is_deepseek_r1
from switchyard.core.adapters.events import (
    ErrorEvent,
    ReasoningEvent,
    TextEvent,
    ToolCallEndEvent,
    ToolCallEvent,
    UsageEvent,
)
from switchyard.core.adapters.registry import create_adapter
from switchyard.core.adapters.toolbridge import ToolSpec
from switchyard.core.errors import AdapterError

from tests.fixtures.fake_clients import build_chat_client, chat_chunk, completion_response, tool_call_fragment
from tests.harness import collect_adapter, event_types, tool_calls

QWEN = "Qwen/Qwen3-Coder-480B-A35B-Instruct-FP8"
READ_FILE = ToolSpec(name="read_file", parameters={"type": "object", "properties": {"path": {"type": "string"}}})


def test_factory_returns_chutes_adapter(make_config) -> None:
    adapter = create_adapter(make_config("Chutes"), None)

    assert isinstance(adapter, ChutesAdapter)
    assert adapter.name == "Chutes"


def test_r1_request_puts_system_prompt_in_user_turn(make_config, user_turn) -> None:
    request = create_adapter(make_config("chutes"), None).build_request("Be helpful", user_turn)

    assert request == {
        "model": CHUTES_DEFAULT_MODEL_ID,
        "max_tokens": 32_768,
        "messages": [{"role": "user", "content": "Be helpful\nHello!"}],
        "stream": True,
        "stream_options": {"include_usage": True},
        "temperature": 0.6,
    }


def test_other_models_use_system_message_and_openai_tools(make_config, user_turn) -> None:
    adapter = create_adapter(make_config("chutes", QWEN), None)

    request = adapter.build_request("Be helpful", user_turn, tools=[READ_FILE], tool_choice="auto")

    assert request["messages"] == [
        {"role": "system", "content": "Be helpful"},
        {"role": "user", "content": "Hello!"},
    ]
    assert request["tools"][0]["function"]["name"] == "read_file"
    assert request["tool_choice"] == "auto"
    assert request["temperature"] == 0.5


def test_temperature_override_wins(make_config, user_turn) -> None:
    request = create_adapter(make_config("chutes", model_temperature=0.1), None).build_request("sys", user_turn)

    assert request["temperature"] == 0.1


def test_r1_think_tags_become_reasoning(make_config) -> None:
    client, stream = build_chat_client(
        [
            chat_chunk(content="<think>plan"),
            chat_chunk(content="</think>Answer"),
            {"choices": [], "usage": {"prompt_tokens": 12, "completion_tokens": 5}},
        ]
    )
    adapter = create_adapter(make_config("chutes"), client)

    events = collect_adapter(adapter, prompt="hi")

    assert events == [
        ReasoningEvent(text="plan"),
        TextEvent(text="Answer"),
        UsageEvent(input_tokens=12, output_tokens=5),
    ]
    assert stream.closed


def test_tool_calls_without_ids_get_synthetic_ids(make_config) -> None:
    client, _ = build_chat_client(
        [
            chat_chunk(tool_calls=[tool_call_fragment(0, name="read_file", arguments='{"path":')]),
            chat_chunk(tool_calls=[tool_call_fragment(0, arguments='"a.ts"}')]),
            chat_chunk(finish_reason="tool_calls"),
        ]
    )
    adapter = create_adapter(make_config("chutes", QWEN), client)

    events = collect_adapter(adapter, prompt="read a.ts", tools=[READ_FILE])

    assert event_types(events) == ["tool_call_partial", "tool_call_partial", "tool_call_end", "tool_call"]
    assert events[2] == ToolCallEndEvent(id="chutes_tool_call_0")
    assert tool_calls(events) == [
        ToolCallEvent(id="chutes_tool_call_0", name="read_file", arguments='{"path":"a.ts"}')
    ]


def test_calls_left_open_flush_at_end_of_stream(make_config) -> None:
    client, _ = build_chat_client(
        [
            chat_chunk(tool_calls=[tool_call_fragment(0, id="call_9", name="read_file", arguments="{}")]),
            chat_chunk(finish_reason="stop"),
        ]
    )
    adapter = create_adapter(make_config("chutes", QWEN), client)

    events = collect_adapter(adapter, prompt="hi")

    assert event_types(events) == ["tool_call_partial", "tool_call"]
    assert tool_calls(events) == [ToolCallEvent(id="call_9", name="read_file", arguments="{}")]


def test_error_chunk_ends_the_stream(make_config) -> None:
    client, _ = build_chat_client(
        [
            {"error": {"code": 429, "message": "rate limited"}},
            chat_chunk(content="never seen"),
        ]
    )
    adapter = create_adapter(make_config("chutes", QWEN), client)

    assert collect_adapter(adapter, prompt="hi") == [ErrorEvent(kind="ProviderError", message="429: rate limited")]


def test_complete_prompt(make_config) -> None:
    client, _ = build_chat_client(response=completion_response("Hi"))
    adapter = create_adapter(make_config("chutes"), client)

    assert asyncio.run(adapter.complete_prompt("Say hi")) == "Hi"
    assert client.chat.completions.calls == [
        {
            "model": CHUTES_DEFAULT_MODEL_ID,
            "messages": [{"role": "user", "content": "Say hi"}],
            "max_tokens": 32_768,
            "temperature": 0.6,
        }
    ]


@pytest.mark.parametrize(
    ("client_kwargs", "message"),
    [
        ({"error": RuntimeError("down")}, "Chutes completion error: down"),
        ({"response": {}}, "Chutes completion error: completion response missing choices"),
    ],
)
def test_complete_prompt_errors(make_config, client_kwargs: dict, message: str) -> None:
    client, _ = build_chat_client(**client_kwargs)
    adapter = create_adapter(make_config("chutes"), client)

    with pytest.raises(AdapterError, match=message):
        asyncio.run(adapter.complete_prompt("Say hi"))


def test_deepseek_r1_detection() -> None:
    assert is_deepseek_r1("deepseek-ai/DeepSeek-R1-0528")
    assert not is_deepseek_r1("deepseek-ai/DeepSeek-V3")
