from __future__ import annotations

import pytest

from switchyard.core.adapters.registry import (
    BACKENDS,
    ZAI_BASE_URLS,
    backend_names,
    create_adapter,
    default_base_url,
)
from switchyard.core.errors import AdapterError

EXPECTED_BACKENDS = [
    "cerebras",
    "chutes",
    "deepinfra",
    "fireworks",
    "groq",
    "inception",
    "moonshot",
    "openrouter",
    "ovhcloud",
    "sambanova",
    "synthetic",
    "zai",
]


def test_backend_names_are_sorted_and_complete() -> None:
    assert backend_names() == EXPECTED_BACKENDS


@pytest.mark.parametrize("name", EXPECTED_BACKENDS)
def test_every_backend_builds_a_request(name: str, make_config, user_turn) -> None:
    adapter = create_adapter(make_config(name), None)

    request = adapter.build_request("sys", user_turn)

    assert request["model"] == adapter.get_model().id
    assert request["messages"]


def test_default_base_urls() -> None:
    assert default_base_url("moonshot") == "https://api.moonshot.ai/v1"
    assert default_base_url("ZAI") == ZAI_BASE_URLS["international_coding"]
    assert default_base_url("chutes") == "https://llm.chutes.ai/v1"
    assert default_base_url("openrouter") == "https://openrouter.ai/api/v1"
    with pytest.raises(AdapterError, match="unknown backend 'nope'"):
        default_base_url("nope")


def test_unknown_backend_lists_the_supported_ones(make_config) -> None:
    with pytest.raises(AdapterError, match="expected one of: cerebras, chutes"):
        create_adapter(make_config("bedrock"), None)


def test_policy_rows_are_keyed_by_name() -> None:
    for name, policy in BACKENDS.items():
        assert policy.name == name
        assert policy.default_model_info.context_window > 0


def test_connection_options_use_backend_default_endpoint(make_config) -> None:
    config = make_config("groq")

    options = config.connection_options(default_base_url=default_base_url(config.backend))

    assert options == {
        "base_url": "https://api.groq.com/openai/v1",
        "api_key": "test-key",
        "default_headers": {},
    }
