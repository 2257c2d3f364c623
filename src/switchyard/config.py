"""Configuration schemas describing a backend, its model and caller overrides."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr

NOT_PROVIDED_API_KEY = "not-provided"


class ModelInfo(BaseModel):
    """Static capabilities and limits of one backend model."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    context_window: int = Field(..., gt=0, description="Maximum prompt plus completion tokens.")
    max_tokens: int | None = Field(None, ge=0, description="Declared maximum output tokens, if known.")
    supports_images: bool = Field(False, description="Whether image inputs are accepted.")
    supports_prompt_cache: bool = Field(False, description="Whether the backend caches prompt prefixes.")
    supports_temperature: bool = Field(True, description="Whether the request may carry a temperature.")
    supports_reasoning_budget: bool = Field(False, description="Whether a thinking token budget can be requested.")
    required_reasoning_budget: bool = Field(False, description="Whether a thinking budget is mandatory.")
    supports_reasoning_effort: Union[bool, List[str]] = Field(
        False,
        description="Reasoning effort capability: a flag or the list of accepted effort values.",
    )
    reasoning_effort: str | None = Field(None, description="Model default reasoning effort.")
    default_temperature: float | None = Field(None, description="Temperature used when the caller sets none.")


class RoutingPreferences(BaseModel):
    """Upstream selection preferences honoured by router backends."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    specific_provider: str | None = Field(None, description="Pin requests to a single upstream provider.")
    data_collection: Literal["allow", "deny"] | None = Field(None, description="Upstream data retention policy.")
    sort: Literal["price", "throughput", "latency"] | None = Field(None, description="Upstream ranking preference.")
    zdr: bool | None = Field(None, description="Require zero-data-retention upstreams.")
    use_middle_out_transform: bool = Field(True, description="Compress over-long prompts on the router side.")


class ProviderSettings(BaseModel):
    """Caller overrides applied on top of :class:`ModelInfo` defaults."""

    model_config = ConfigDict(extra="forbid", frozen=True, protected_namespaces=())

    model_max_tokens: int | None = Field(None, gt=0, description="Explicit output token limit.")
    model_temperature: float | None = Field(None, ge=0, description="Explicit sampling temperature.")
    enable_reasoning_effort: bool | None = Field(None, description="Master switch for thinking/reasoning.")
    reasoning_effort: str | None = Field(None, description="Selected effort, or 'disable' to turn reasoning off.")
    routing: RoutingPreferences = Field(default_factory=RoutingPreferences, description="Router preferences.")


class RequestMetadata(BaseModel):
    """Per-request metadata forwarded by the calling agent."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    task_id: str | None = Field(None, description="Identifier of the calling task, used as a prompt-cache key.")
    tool_protocol: str | None = Field(None, description="Tool calling protocol negotiated by the caller.")


class ProviderConfig(BaseModel):
    """Everything needed to address one backend model.

    The API key is stored as a :class:`~pydantic.SecretStr` so it never shows
    up in ``repr`` output or logs; it is revealed only by
    :meth:`connection_options`.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, protected_namespaces=())

    backend: str = Field(..., min_length=1, description="Backend name, e.g. 'moonshot' or 'openrouter'.")
    model_id: str | None = Field(None, description="Model identifier; the backend default is used when unset.")
    base_url: str | None = Field(None, description="Endpoint override; the backend default is used when unset.")
    api_key: SecretStr | None = Field(None, description="Credential supplied by the caller.")
    model_info: ModelInfo | None = Field(None, description="Capabilities override for the selected model.")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra headers sent with every request.")
    settings: ProviderSettings = Field(default_factory=ProviderSettings, description="Caller overrides.")

    def connection_options(self, *, default_base_url: str | None = None) -> Dict[str, Any]:
        """Return the keyword arguments a caller uses to build its transport client."""

        api_key = self.api_key.get_secret_value() if self.api_key is not None else NOT_PROVIDED_API_KEY
        return {
            "base_url": self.base_url or default_base_url,
            "api_key": api_key,
            "default_headers": dict(self.headers),
        }


__all__ = [
    "ModelInfo",
    "NOT_PROVIDED_API_KEY",
    "ProviderConfig",
    "ProviderSettings",
    "RequestMetadata",
    "RoutingPreferences",
]
