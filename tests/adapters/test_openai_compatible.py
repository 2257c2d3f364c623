from __future__ import annotations

import asyncio
import logging

import pytest

from switchyard.config import ModelInfo, ProviderConfig, RequestMetadata
from switchyard.core.adapters.events import ErrorEvent, ToolCallEvent, UsageEvent
from switchyard.core.adapters.openai_compatible import OpenAICompatibleAdapter
from switchyard.core.adapters.registry import MOONSHOT, SYNTHETIC, ZAI, create_adapter
from switchyard.core.adapters.toolbridge import ToolSpec
from switchyard.core.errors import AdapterError

from tests.fixtures.fake_clients import FakePartClient
from tests.harness import collect_adapter, event_types, of_type, tool_calls

READ_FILE = ToolSpec(
    name="read_file",
    description="Read a file",
    parameters={"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
)

READ_FILE_FRAMES = [
    {"type": "start"},
    {"type": "tool-input-start", "id": "c1", "toolName": "read_file"},
    {"type": "tool-input-delta", "id": "c1", "delta": '{"path":'},
    {"type": "tool-input-delta", "id": "c1", "delta": '"test.ts"}'},
    {"type": "tool-input-end", "id": "c1"},
    {"type": "tool-call", "toolCallId": "c1", "toolName": "read_file", "input": {"path": "test.ts"}},
    {
        "type": "finish",
        "totalUsage": {"inputTokens": 100, "outputTokens": 50, "raw": {"cached_tokens": 30}},
    },
]


def test_factory_builds_policy_adapter(make_config) -> None:
    adapter = create_adapter(make_config("moonshot"), FakePartClient())

    assert isinstance(adapter, OpenAICompatibleAdapter)
    assert adapter.policy is MOONSHOT
    assert adapter.name == "Moonshot"
    assert create_adapter(make_config("zai"), None).name == "Z.ai"


def test_strict_moonshot_model_envelope(make_config, user_turn) -> None:
    adapter = create_adapter(make_config("moonshot", "kimi-k2.5", model_temperature=0.2), FakePartClient())

    request = adapter.build_request("Be helpful", user_turn, metadata=RequestMetadata(task_id="task-1"))

    assert request == {
        "model": "kimi-k2.5",
        "system": "Be helpful",
        "messages": [{"role": "user", "content": "Hello!"}],
        "temperature": 1.0,
        "max_output_tokens": 16_000,
        "provider_options": {"moonshot": {"prompt_cache_key": "task-1", "thinking": {"type": "enabled"}}},
    }


def test_strict_moonshot_model_with_thinking_disabled(make_config, user_turn) -> None:
    config = make_config("moonshot", "kimi-for-coding", enable_reasoning_effort=False)
    request = create_adapter(config, None).build_request("sys", user_turn)

    assert request["temperature"] == 0.6
    assert request["provider_options"] == {"moonshot": {"thinking": {"type": "disabled"}}}


def test_default_moonshot_model_has_no_provider_options(make_config, user_turn) -> None:
    request = create_adapter(make_config("moonshot"), None).build_request("sys", user_turn)

    assert request["model"] == "kimi-k2-thinking"
    assert request["temperature"] == 0
    assert request["max_output_tokens"] == 16_000
    assert "provider_options" not in request


def test_unknown_model_keeps_id_with_default_capabilities(make_config) -> None:
    model = create_adapter(make_config("moonshot", "kimi-k3-preview"), None).get_model()

    assert model.id == "kimi-k3-preview"
    assert model.info == MOONSHOT.default_model_info


def test_zai_thinking_follows_reasoning_effort(make_config, user_turn) -> None:
    enabled = create_adapter(make_config("zai"), None).build_request("sys", user_turn)
    disabled = create_adapter(make_config("zai", reasoning_effort="disable"), None).build_request("sys", user_turn)
    plain = create_adapter(make_config("zai", "glm-4.6"), None).build_request("sys", user_turn)

    assert enabled["model"] == "glm-4.7"
    assert enabled["temperature"] == 0.6
    assert enabled["max_output_tokens"] == 40_000
    assert enabled["provider_options"] == {"zai": {"thinking": {"type": "enabled"}}}
    assert disabled["provider_options"] == {"zai": {"thinking": {"type": "disabled"}}}
    assert "provider_options" not in plain
    assert ZAI.resolve_model(make_config("zai", "glm-4.6"))[1].max_tokens == 98_304


def test_synthetic_envelope_uses_backend_default_temperature(make_config, user_turn) -> None:
    request = create_adapter(make_config("synthetic"), None).build_request("sys", user_turn)

    assert request["model"] == SYNTHETIC.default_model_id
    assert request["temperature"] == 0.5
    assert request["max_output_tokens"] == 25_600


def test_settings_override_token_limit_and_temperature(make_config, user_turn) -> None:
    config = make_config("cerebras", model_max_tokens=4096, model_temperature=0.3)
    request = create_adapter(config, None).build_request("sys", user_turn)

    assert request["max_output_tokens"] == 4096
    assert request["temperature"] == 0.3


def test_models_without_temperature_support_omit_it(user_turn) -> None:
    config = ProviderConfig(
        backend="groq",
        model_id="openai/gpt-oss-120b",
        model_info=ModelInfo(context_window=131_072, max_tokens=65_536, supports_temperature=False),
    )

    request = create_adapter(config, None).build_request("sys", user_turn)

    assert "temperature" not in request
    assert request["max_output_tokens"] == 26_215


def test_tools_and_tool_choice_are_mapped(make_config, user_turn) -> None:
    adapter = create_adapter(make_config("fireworks"), None)

    with_tools = adapter.build_request("sys", user_turn, tools=[READ_FILE], tool_choice={"name": "read_file"})
    without_tools = adapter.build_request("sys", user_turn, tool_choice="required")

    assert with_tools["tools"] == {
        "read_file": {
            "description": "Read a file",
            "input_schema": {
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"],
            },
        }
    }
    assert with_tools["tool_choice"] == {"type": "tool", "toolName": "read_file"}
    assert "tools" not in without_tools
    assert "tool_choice" not in without_tools


def test_request_shape_is_logged_at_debug(make_config, user_turn, caplog: pytest.LogCaptureFixture) -> None:
    adapter = create_adapter(make_config("groq"), None)

    with caplog.at_level(logging.DEBUG, logger="switchyard.core.adapters.openai_compatible"):
        adapter.build_request("sys", user_turn, tools=[READ_FILE])

    assert "Groq request" in caplog.text
    assert "tools=1" in caplog.text


def test_read_file_stream_emits_one_tool_call_and_usage(make_config) -> None:
    client = FakePartClient(READ_FILE_FRAMES)
    adapter = create_adapter(make_config("moonshot"), client)

    events = collect_adapter(adapter, prompt="Read test.ts", tools=[READ_FILE])

    assert event_types(events) == [
        "tool_call_start",
        "tool_call_delta",
        "tool_call_delta",
        "tool_call_end",
        "tool_call",
        "usage",
    ]
    assert tool_calls(events) == [ToolCallEvent(id="c1", name="read_file", arguments='{"path":"test.ts"}')]
    assert of_type(events, UsageEvent) == [
        UsageEvent(input_tokens=100, output_tokens=50, cache_write_tokens=0, cache_read_tokens=30)
    ]
    assert client.stream.closed
    [call] = client.stream_calls
    assert call["messages"] == [{"role": "user", "content": "Read test.ts"}]
    assert "read_file" in call["tools"]


def test_stream_is_opened_lazily(make_config, user_turn) -> None:
    client = FakePartClient([{"type": "text-delta", "text": "hi"}])
    adapter = create_adapter(make_config("inception"), client)

    iterator = adapter.stream("sys", user_turn)

    assert client.stream_calls == []
    asyncio.run(iterator.aclose())


def test_failure_to_open_stream_is_in_band(make_config) -> None:
    client = FakePartClient(error=ConnectionError("connection refused"))
    adapter = create_adapter(make_config("deepinfra"), client)

    events = collect_adapter(adapter, prompt="hi")

    assert events == [ErrorEvent(kind="StreamError", message="connection refused")]


def test_custom_stream_factory_receives_request(make_config) -> None:
    seen = []

    def factory(client, request):
        seen.append(request)
        return client.stream_text(**request)

    client = FakePartClient([{"type": "text-delta", "text": "ok"}])
    adapter = create_adapter(make_config("sambanova"), client, stream_factory=factory)

    events = collect_adapter(adapter, prompt="hi")

    assert event_types(events) == ["text"]
    assert seen[0]["model"] == "Meta-Llama-3.3-70B-Instruct"


def test_complete_prompt_returns_text(make_config) -> None:
    client = FakePartClient(text="Hi there")
    adapter = create_adapter(make_config("moonshot"), client)

    assert asyncio.run(adapter.complete_prompt("Say hi")) == "Hi there"
    assert client.generate_calls == [
        {"model": "kimi-k2-thinking", "prompt": "Say hi", "temperature": 0, "max_output_tokens": 16_000}
    ]


def test_complete_prompt_wraps_backend_errors(make_config) -> None:
    client = FakePartClient(error=RuntimeError("boom"))
    adapter = create_adapter(make_config("moonshot"), client)

    with pytest.raises(AdapterError, match="Moonshot completion error: boom") as excinfo:
        asyncio.run(adapter.complete_prompt("Say hi"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
