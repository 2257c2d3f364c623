"""Backend table and adapter factory."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ...config import ModelInfo, ProviderConfig
from ..errors import AdapterError
from .base import ModelAdapter
from .chutes import CHUTES_BASE_URL, ChutesAdapter
from .openai_compatible import OpenAICompatibleAdapter
from .openrouter import OPENROUTER_BASE_URL, OpenRouterAdapter
from .policy import MOONSHOT_STRICT_TEMPERATURES, BackendPolicy
from .usage import UsageFields

ZAI_DEFAULT_TEMPERATURE = 0.6
SYNTHETIC_DEFAULT_TEMPERATURE = 0.5

# Alternative Z.ai lines; the international coding plan is the default.
ZAI_BASE_URLS = {
    "international_coding": "https://api.z.ai/api/coding/paas/v4",
    "international_api": "https://api.z.ai/api/paas/v4",
    "china_coding": "https://open.bigmodel.cn/api/coding/paas/v4",
    "china_api": "https://open.bigmodel.cn/api/paas/v4",
}

_KIMI_THINKING = ModelInfo(context_window=262_144, max_tokens=16_000, supports_prompt_cache=True)
_KIMI_MULTIMODAL = ModelInfo(
    context_window=262_144,
    max_tokens=16_000,
    supports_images=True,
    supports_prompt_cache=True,
)
_GLM_REASONING = dict(
    context_window=200_000,
    supports_prompt_cache=True,
    supports_reasoning_effort=["disable", "medium"],
    reasoning_effort="medium",
)

MOONSHOT = BackendPolicy(
    name="moonshot",
    base_url="https://api.moonshot.ai/v1",
    default_model_id="kimi-k2-thinking",
    default_model_info=_KIMI_THINKING,
    models={
        "kimi-k2-thinking": _KIMI_THINKING,
        "kimi-k2.5": _KIMI_MULTIMODAL,
        "kimi-for-coding": _KIMI_MULTIMODAL,
    },
    options_namespace="moonshot",
    strict_temperatures=MOONSHOT_STRICT_TEMPERATURES,
    usage_fields=UsageFields(cache_read_path=("raw", "cached_tokens"), cache_write_default=0),
    supports_prompt_cache_key=True,
)

ZAI = BackendPolicy(
    name="zai",
    label="Z.ai",
    base_url=ZAI_BASE_URLS["international_coding"],
    default_model_id="glm-4.7",
    default_model_info=ModelInfo(max_tokens=131_072, **_GLM_REASONING),
    models={
        "glm-4.6": ModelInfo(context_window=200_000, max_tokens=98_304, supports_prompt_cache=True),
        "glm-4.7": ModelInfo(max_tokens=131_072, **_GLM_REASONING),
        "glm-5": ModelInfo(max_tokens=131_072, **_GLM_REASONING),
    },
    options_namespace="zai",
    default_temperature=ZAI_DEFAULT_TEMPERATURE,
    supports_thinking=True,
)

SYNTHETIC = BackendPolicy(
    name="synthetic",
    base_url="https://api.synthetic.new/openai/v1",
    default_model_id="hf:zai-org/GLM-4.6",
    default_model_info=ModelInfo(context_window=128_000, max_tokens=128_000),
    default_temperature=SYNTHETIC_DEFAULT_TEMPERATURE,
)

OVHCLOUD = BackendPolicy(
    name="ovhcloud",
    label="OVHcloud",
    base_url="https://oai.endpoints.kepler.ai.cloud.ovh.net/v1",
    default_model_id="gpt-oss-120b",
    default_model_info=ModelInfo(context_window=131_072, max_tokens=131_072),
)

CEREBRAS = BackendPolicy(
    name="cerebras",
    base_url="https://api.cerebras.ai/v1",
    default_model_id="gpt-oss-120b",
    default_model_info=ModelInfo(context_window=131_072, max_tokens=32_768),
)

DEEPINFRA = BackendPolicy(
    name="deepinfra",
    label="DeepInfra",
    base_url="https://api.deepinfra.com/v1/openai",
    default_model_id="Qwen/Qwen3-Coder-480B-A35B-Instruct-Turbo",
    default_model_info=ModelInfo(context_window=262_144, max_tokens=32_768, supports_prompt_cache=True),
)

GROQ = BackendPolicy(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    default_model_id="moonshotai/kimi-k2-instruct-0905",
    default_model_info=ModelInfo(context_window=262_144, max_tokens=16_384, supports_prompt_cache=True),
)

FIREWORKS = BackendPolicy(
    name="fireworks",
    base_url="https://api.fireworks.ai/inference/v1",
    default_model_id="accounts/fireworks/models/kimi-k2-instruct-0905",
    default_model_info=ModelInfo(context_window=262_144, max_tokens=16_384, supports_prompt_cache=True),
)

SAMBANOVA = BackendPolicy(
    name="sambanova",
    label="SambaNova",
    base_url="https://api.sambanova.ai/v1",
    default_model_id="Meta-Llama-3.3-70B-Instruct",
    default_model_info=ModelInfo(context_window=131_072, max_tokens=8_192),
)

INCEPTION = BackendPolicy(
    name="inception",
    base_url="https://api.inceptionlabs.ai/v1/",
    default_model_id="mercury-coder",
    default_model_info=ModelInfo(context_window=128_000, max_tokens=16_384),
)

BACKENDS: Mapping[str, BackendPolicy] = {
    policy.name: policy
    for policy in (
        MOONSHOT,
        ZAI,
        SYNTHETIC,
        OVHCLOUD,
        CEREBRAS,
        DEEPINFRA,
        GROQ,
        FIREWORKS,
        SAMBANOVA,
        INCEPTION,
    )
}

BESPOKE_BACKENDS: Mapping[str, tuple[type[ModelAdapter], str]] = {
    "chutes": (ChutesAdapter, CHUTES_BASE_URL),
    "openrouter": (OpenRouterAdapter, OPENROUTER_BASE_URL),
}


def backend_names() -> list[str]:
    return sorted([*BACKENDS, *BESPOKE_BACKENDS])


def default_base_url(backend: str) -> str:
    """Return the endpoint a backend is reached at unless the caller overrides it."""

    key = backend.lower()
    if key in BACKENDS:
        return BACKENDS[key].base_url
    if key in BESPOKE_BACKENDS:
        return BESPOKE_BACKENDS[key][1]
    msg = f"unknown backend '{backend}'"
    raise AdapterError(msg)


def create_adapter(config: ProviderConfig, client: Any, **options: Any) -> ModelAdapter:
    """Build the adapter serving ``config.backend``.

    ``options`` are forwarded to the adapter constructor, e.g. a custom
    ``stream_factory``.
    """

    key = config.backend.lower()
    if key in BESPOKE_BACKENDS:
        adapter_cls, _ = BESPOKE_BACKENDS[key]
        return adapter_cls(config, client, **options)

    policy = BACKENDS.get(key)
    if policy is None:
        msg = f"unknown backend '{config.backend}'; expected one of: {', '.join(backend_names())}"
        raise AdapterError(msg)
    return OpenAICompatibleAdapter(config, client, policy=policy, **options)


__all__ = [
    "BACKENDS",
    "BESPOKE_BACKENDS",
    "backend_names",
    "create_adapter",
    "default_base_url",
]
