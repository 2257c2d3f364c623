"""Normalize backend usage payloads into :class:`UsageEvent` records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .events import UsageEvent

_INPUT_KEYS = ("inputTokens", "input_tokens", "prompt_tokens")
_OUTPUT_KEYS = ("outputTokens", "output_tokens", "completion_tokens")
_CACHE_READ_PATHS = (
    ("details", "cachedInputTokens"),
    ("cachedInputTokens",),
    ("prompt_tokens_details", "cached_tokens"),
)
_REASONING_PATHS = (
    ("details", "reasoningTokens"),
    ("reasoningTokens",),
    ("completion_tokens_details", "reasoning_tokens"),
)


@dataclass(frozen=True, slots=True)
class UsageFields:
    """Where a backend reports cache and cost counters.

    ``cache_read_path`` is consulted before the generic nested fields. When
    ``cache_write_default`` is set (backends that only report cache reads),
    ``cache_write_tokens`` falls back to it instead of ``None``.
    """

    cache_read_path: tuple[str, ...] | None = None
    cache_write_default: int | None = None
    reports_cost: bool = False


def normalize_usage(raw: Mapping[str, Any], *, fields: UsageFields | None = None) -> UsageEvent:
    """Build a :class:`UsageEvent` from any supported usage payload shape."""

    fields = fields or UsageFields()

    cache_read = None
    if fields.cache_read_path is not None:
        cache_read = _int_at(raw, fields.cache_read_path)
    if cache_read is None:
        cache_read = _first_int(raw, _CACHE_READ_PATHS)

    total_cost = None
    if fields.reports_cost:
        total_cost = _total_cost(raw)

    return UsageEvent(
        input_tokens=_first_int(raw, [(key,) for key in _INPUT_KEYS]) or 0,
        output_tokens=_first_int(raw, [(key,) for key in _OUTPUT_KEYS]) or 0,
        cache_write_tokens=fields.cache_write_default,
        cache_read_tokens=cache_read,
        reasoning_tokens=_first_int(raw, _REASONING_PATHS),
        total_cost=total_cost,
    )


def _total_cost(raw: Mapping[str, Any]) -> float:
    cost = _number_at(raw, ("cost",)) or 0
    upstream = _number_at(raw, ("cost_details", "upstream_inference_cost")) or 0
    return float(cost + upstream)


def _first_int(raw: Mapping[str, Any], paths: Any) -> int | None:
    for path in paths:
        value = _int_at(raw, path)
        if value is not None:
            return value
    return None


def _int_at(raw: Mapping[str, Any], path: tuple[str, ...]) -> int | None:
    value = _number_at(raw, path)
    if value is None:
        return None
    return int(value)


def _number_at(raw: Mapping[str, Any], path: tuple[str, ...]) -> int | float | None:
    current: Any = raw
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        return None
    return current


__all__ = ["UsageFields", "normalize_usage"]
