"""Mapping helpers between switchyard tool specs and backend schemas."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import json
import re
from typing import Any

from ..errors import AdapterError
from ..message import ensure_json_compatible, freeze_json, thaw_json

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")
_SIMPLE_TOOL_CHOICES = ("auto", "none", "required")


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Canonical tool/function description offered to a backend.

    ``parameters`` is a JSON Schema object; an empty mapping declares a tool
    without arguments. The schema is validated and frozen on construction.
    """

    name: str
    parameters: Mapping[str, Any]
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(self.name):
            msg = "tool name must match ^[a-zA-Z0-9_-]{1,64}$"
            raise AdapterError(msg)

        if self.description is not None:
            object.__setattr__(self, "description", _clean_description(self.description))
        object.__setattr__(self, "parameters", freeze_json(_checked_schema(self.name, self.parameters)))


def _clean_description(description: Any) -> str:
    if not isinstance(description, str):
        msg = "tool description must be a string when provided"
        raise AdapterError(msg)
    cleaned = description.strip()
    if not cleaned:
        msg = "tool description cannot be empty"
        raise AdapterError(msg)
    return cleaned


def _checked_schema(tool_name: str, parameters: Any) -> dict[str, Any]:
    if not isinstance(parameters, Mapping):
        msg = "tool parameters must be a mapping"
        raise AdapterError(msg)

    schema = thaw_json(parameters)
    ensure_json_compatible(schema, path=f"ToolSpec('{tool_name}').parameters")
    try:
        schema = json.loads(json.dumps(schema, allow_nan=False))
    except (TypeError, ValueError) as exc:  # pragma: no cover - guarded above
        msg = "tool parameters must be JSON serializable"
        raise AdapterError(msg) from exc

    if schema.get("type", "object") != "object":
        msg = "tool parameters must describe a JSON object"
        raise AdapterError(msg)

    properties = schema.get("properties") or {}
    if not isinstance(properties, dict):
        msg = "tool parameter 'properties' must be a mapping"
        raise AdapterError(msg)

    required = schema.get("required", [])
    if not isinstance(required, list):
        msg = "tool parameter 'required' must be a list of strings"
        raise AdapterError(msg)
    for position, field_name in enumerate(required):
        if not isinstance(field_name, str) or not field_name:
            msg = f"required parameter names must be non-empty strings (index {position})"
            raise AdapterError(msg)
        if field_name not in properties:
            msg = f"required parameter '{field_name}' is not defined"
            raise AdapterError(msg)

    return schema


def _validated_specs(tool_specs: Sequence[ToolSpec]) -> list[ToolSpec]:
    if isinstance(tool_specs, (str, bytes, bytearray, Mapping)) or not isinstance(tool_specs, Sequence):
        msg = "tools must be provided as a sequence of ToolSpec instances"
        raise AdapterError(msg)

    specs: list[ToolSpec] = []
    seen_names: set[str] = set()
    for index, spec in enumerate(tool_specs):
        if not isinstance(spec, ToolSpec):
            msg = f"tools[{index}] must be a ToolSpec"
            raise AdapterError(msg)
        if spec.name in seen_names:
            msg = f"duplicate tool name '{spec.name}'"
            raise AdapterError(msg)
        seen_names.add(spec.name)
        specs.append(spec)
    return specs


def tool_specs_to_openai(tool_specs: Sequence[ToolSpec] | None) -> list[dict[str, Any]] | None:
    """Convert tool specs to the chat-completions ``tools`` schema.

    Returns ``None`` when no tools are offered so callers can omit the field.
    """

    if not tool_specs:
        return None

    normalized_tools: list[dict[str, Any]] = []
    for spec in _validated_specs(tool_specs):
        function_payload: dict[str, Any] = {
            "name": spec.name,
            "parameters": thaw_json(spec.parameters),
        }
        if spec.description is not None:
            function_payload["description"] = spec.description

        normalized_tools.append({"type": "function", "function": function_payload})

    return normalized_tools


def tool_specs_to_sdk(tool_specs: Sequence[ToolSpec] | None) -> dict[str, dict[str, Any]] | None:
    """Convert tool specs to the part-stream tool set keyed by tool name."""

    if not tool_specs:
        return None

    tool_set: dict[str, dict[str, Any]] = {}
    for spec in _validated_specs(tool_specs):
        tool_set[spec.name] = {
            "description": spec.description,
            "input_schema": thaw_json(spec.parameters),
        }
    return tool_set


def map_tool_choice(tool_choice: Any) -> str | dict[str, str] | None:
    """Map a caller tool choice onto the part-stream request vocabulary.

    ``"auto"``, ``"none"`` and ``"required"`` pass through and any other string
    falls back to ``"auto"``. A named choice, either ``{"name": ...}`` or the
    chat-style ``{"type": "function", "function": {"name": ...}}``, becomes
    ``{"type": "tool", "toolName": ...}``. Anything else maps to ``None``.
    """

    if not tool_choice:
        return None

    if isinstance(tool_choice, str):
        if tool_choice in _SIMPLE_TOOL_CHOICES:
            return tool_choice
        return "auto"

    if isinstance(tool_choice, Mapping):
        name = tool_choice.get("name")
        if tool_choice.get("type") == "function":
            function_payload = tool_choice.get("function")
            if isinstance(function_payload, Mapping):
                name = function_payload.get("name")
        if isinstance(name, str) and name:
            return {"type": "tool", "toolName": name}

    return None


def tool_choice_to_openai(tool_choice: Any) -> str | dict[str, Any] | None:
    """Map a caller tool choice onto the chat-completions ``tool_choice`` field."""

    mapped = map_tool_choice(tool_choice)
    if isinstance(mapped, dict):
        return {"type": "function", "function": {"name": mapped["toolName"]}}
    return mapped


__all__ = [
    "ToolSpec",
    "map_tool_choice",
    "tool_choice_to_openai",
    "tool_specs_to_openai",
    "tool_specs_to_sdk",
]
