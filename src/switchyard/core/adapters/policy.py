"""Per-backend request policy: token limits, temperature and thinking controls.

Everything here is a pure function of the model id, its :class:`ModelInfo`
and the caller's :class:`ProviderSettings`. Backend-specific behaviour is
expressed as data (:class:`BackendPolicy` rows and the strict temperature
tables) rather than subclasses.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ...config import ModelInfo, ProviderConfig, ProviderSettings
from .usage import UsageFields

ANTHROPIC_DEFAULT_MAX_TOKENS = 8192
DEFAULT_HYBRID_REASONING_MODEL_MAX_TOKENS = 16_384
MAX_TOKENS_CONTEXT_RATIO = 0.2
DEEP_SEEK_DEFAULT_TEMPERATURE = 0.6

# Model id fragments (lower-case) that keep their full declared output limit.
UNCLAMPED_MODEL_PATTERNS: tuple[str, ...] = ("gpt-5",)

_ROUTER_FORMATS = ("openrouter", "zenmux")

_EMPTY_SETTINGS = ProviderSettings()


@dataclass(frozen=True, slots=True)
class StrictTemperature:
    """Temperatures a model requires depending on whether thinking is on."""

    thinking: float
    non_thinking: float


MOONSHOT_STRICT_TEMPERATURES: Mapping[str, StrictTemperature] = {
    "kimi-k2.5": StrictTemperature(thinking=1.0, non_thinking=0.6),
    "kimi-for-coding": StrictTemperature(thinking=1.0, non_thinking=0.6),
}


def should_use_reasoning_budget(model: ModelInfo, settings: ProviderSettings | None = None) -> bool:
    settings = settings or _EMPTY_SETTINGS
    return model.required_reasoning_budget or (
        model.supports_reasoning_budget and bool(settings.enable_reasoning_effort)
    )


def should_use_reasoning_effort(model: ModelInfo, settings: ProviderSettings | None = None) -> bool:
    """Decide whether a reasoning effort should be requested.

    An explicit ``enable_reasoning_effort=False`` or a selected effort of
    ``"disable"`` always wins. A list capability requires the selected effort
    to be listed, a ``True`` capability requires any selected effort, and with
    no declared capability only a model default effort enables reasoning.
    """

    settings = settings or _EMPTY_SETTINGS
    if settings.enable_reasoning_effort is False:
        return False

    selected = settings.reasoning_effort or model.reasoning_effort
    if selected == "disable":
        return False

    capability = model.supports_reasoning_effort
    if isinstance(capability, list):
        return bool(selected) and selected in capability
    if capability is True:
        return bool(selected)
    return bool(model.reasoning_effort)


def get_model_max_output_tokens(
    model_id: str,
    model: ModelInfo,
    settings: ProviderSettings | None = None,
    format: str | None = None,
) -> int | None:
    """Return the output token limit to request, or ``None`` to omit it."""

    settings = settings or _EMPTY_SETTINGS
    if should_use_reasoning_budget(model, settings):
        return settings.model_max_tokens or DEFAULT_HYBRID_REASONING_MODEL_MAX_TOKENS

    is_anthropic_context = (
        "claude" in model_id
        or format == "anthropic"
        or (format in _ROUTER_FORMATS and model_id.startswith("anthropic/"))
    )
    if is_anthropic_context and not model.max_tokens:
        return ANTHROPIC_DEFAULT_MAX_TOKENS

    if model.max_tokens:
        lowered = model_id.lower()
        if any(pattern in lowered for pattern in UNCLAMPED_MODEL_PATTERNS):
            return model.max_tokens
        return min(model.max_tokens, math.ceil(model.context_window * MAX_TOKENS_CONTEXT_RATIO))

    if format:
        return None
    return ANTHROPIC_DEFAULT_MAX_TOKENS


def is_thinking_enabled(settings: ProviderSettings | None = None) -> bool:
    """Thinking is on unless the caller switched it off."""

    settings = settings or _EMPTY_SETTINGS
    if settings.enable_reasoning_effort is False:
        return False
    return settings.reasoning_effort != "disable"


def strict_temperature_for(
    model_id: str,
    table: Mapping[str, StrictTemperature],
) -> StrictTemperature | None:
    """Look up ``model_id`` exactly, then by substring for unlisted variants."""

    if model_id in table:
        return table[model_id]
    lowered = model_id.lower()
    for pattern, temperatures in table.items():
        if pattern in lowered:
            return temperatures
    return None


def select_temperature(
    model_id: str,
    model: ModelInfo,
    settings: ProviderSettings | None = None,
    *,
    strict_table: Mapping[str, StrictTemperature] | None = None,
    default_temperature: float | None = None,
) -> float:
    """Pick the sampling temperature for a request.

    Strict models ignore the caller's override and use the temperature tied to
    their thinking mode. Everyone else gets ``override``, then the model
    default, then the backend default, then ``0``.
    """

    settings = settings or _EMPTY_SETTINGS
    strict = strict_temperature_for(model_id, strict_table or {})
    if strict is not None:
        return strict.thinking if is_thinking_enabled(settings) else strict.non_thinking

    for candidate in (settings.model_temperature, model.default_temperature, default_temperature):
        if candidate is not None:
            return candidate
    return 0


def thinking_field(model: ModelInfo, settings: ProviderSettings | None = None) -> dict[str, str] | None:
    """Return ``{"type": "enabled" | "disabled"}`` for models with effort control."""

    if not model.supports_reasoning_effort:
        return None
    enabled = should_use_reasoning_effort(model, settings)
    return {"type": "enabled" if enabled else "disabled"}


def build_provider_options(
    namespace: str | None,
    *,
    task_id: str | None = None,
    thinking: Mapping[str, str] | None = None,
) -> dict[str, dict[str, Any]] | None:
    """Nest request extras under the backend's provider-options namespace."""

    if namespace is None:
        return None

    options: dict[str, Any] = {}
    if task_id:
        options["prompt_cache_key"] = task_id
    if thinking:
        options["thinking"] = dict(thinking)
    if not options:
        return None
    return {namespace: options}


@dataclass(frozen=True, slots=True)
class BackendPolicy:
    """Everything that distinguishes one part-stream backend from another."""

    name: str
    base_url: str
    default_model_id: str
    default_model_info: ModelInfo
    models: Mapping[str, ModelInfo] = field(default_factory=dict)
    options_namespace: str | None = None
    strict_temperatures: Mapping[str, StrictTemperature] = field(default_factory=dict)
    default_temperature: float | None = None
    usage_fields: UsageFields = field(default_factory=UsageFields)
    supports_prompt_cache_key: bool = False
    supports_thinking: bool = False
    max_tokens_format: str | None = "openai"
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.name.capitalize()

    def resolve_model(self, config: ProviderConfig) -> tuple[str, ModelInfo]:
        """Return the model id and capabilities for ``config``.

        Unknown model ids keep the caller's id but borrow the default model's
        capabilities.
        """

        model_id = config.model_id or self.default_model_id
        info = config.model_info or self.models.get(model_id) or self.default_model_info
        return model_id, info

    def temperature(self, model_id: str, model: ModelInfo, settings: ProviderSettings) -> float:
        return select_temperature(
            model_id,
            model,
            settings,
            strict_table=self.strict_temperatures,
            default_temperature=self.default_temperature,
        )

    def thinking(self, model_id: str, model: ModelInfo, settings: ProviderSettings) -> dict[str, str] | None:
        if strict_temperature_for(model_id, self.strict_temperatures) is not None:
            return {"type": "enabled" if is_thinking_enabled(settings) else "disabled"}
        if self.supports_thinking:
            return thinking_field(model, settings)
        return None

    def max_output_tokens(self, model_id: str, model: ModelInfo, settings: ProviderSettings) -> int | None:
        if settings.model_max_tokens:
            return settings.model_max_tokens
        return get_model_max_output_tokens(model_id, model, settings, self.max_tokens_format)

    def provider_options(
        self,
        model_id: str,
        model: ModelInfo,
        settings: ProviderSettings,
        *,
        task_id: str | None = None,
    ) -> dict[str, dict[str, Any]] | None:
        return build_provider_options(
            self.options_namespace,
            task_id=task_id if self.supports_prompt_cache_key else None,
            thinking=self.thinking(model_id, model, settings),
        )


__all__ = [
    "ANTHROPIC_DEFAULT_MAX_TOKENS",
    "BackendPolicy",
    "DEEP_SEEK_DEFAULT_TEMPERATURE",
    "DEFAULT_HYBRID_REASONING_MODEL_MAX_TOKENS",
    "MOONSHOT_STRICT_TEMPERATURES",
    "StrictTemperature",
    "UNCLAMPED_MODEL_PATTERNS",
    "build_provider_options",
    "get_model_max_output_tokens",
    "is_thinking_enabled",
    "select_temperature",
    "should_use_reasoning_budget",
    "should_use_reasoning_effort",
    "strict_temperature_for",
    "thinking_field",
]
