"""Conversation schema shared across adapters."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import json
import math
from types import MappingProxyType
from typing import Any, Literal, Union

from .errors import AdapterError


class MessageRole(str, Enum):
    """Canonical role names supported by switchyard."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class TextBlock:
    """Plain text content."""

    text: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            msg = "text block content must be a string"
            raise AdapterError(msg)


@dataclass(frozen=True, slots=True)
class ImageSource:
    """Location of image bytes, either inline base64 data or a URL."""

    type: Literal["base64", "url"]
    media_type: str | None = None
    data: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if self.type not in ("base64", "url"):
            msg = f"unsupported image source type '{self.type}'"
            raise AdapterError(msg)


@dataclass(frozen=True, slots=True)
class ImageBlock:
    """Image content attached to a user turn or a tool result."""

    source: ImageSource


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    """A tool invocation previously requested by the assistant."""

    id: str
    name: str
    input: Mapping[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            msg = "tool use id must be a non-empty string"
            raise AdapterError(msg)
        if not isinstance(self.name, str) or not self.name:
            msg = "tool use name must be a non-empty string"
            raise AdapterError(msg)
        if not isinstance(self.input, Mapping):
            msg = "tool use input must be a mapping"
            raise AdapterError(msg)

        plain_input = _thaw_json_structure(dict(self.input))
        _ensure_json_compatible(plain_input, path=f"ToolUseBlock('{self.name}').input")
        object.__setattr__(self, "input", _freeze_json_structure(plain_input))


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    """Output of a tool call, referencing the originating tool use id."""

    tool_use_id: str
    content: str | tuple[TextBlock | ImageBlock, ...] = ""

    def __post_init__(self) -> None:
        if not isinstance(self.tool_use_id, str) or not self.tool_use_id:
            msg = "tool result must reference a non-empty tool_use_id"
            raise AdapterError(msg)
        if isinstance(self.content, str):
            return
        if not isinstance(self.content, Sequence):
            msg = "tool result content must be a string or a sequence of blocks"
            raise AdapterError(msg)
        blocks = tuple(self.content)
        for block in blocks:
            if not isinstance(block, (TextBlock, ImageBlock)):
                msg = "tool result content may only contain text and image blocks"
                raise AdapterError(msg)
        object.__setattr__(self, "content", blocks)


@dataclass(frozen=True, slots=True)
class ReasoningBlock:
    """Reasoning text produced by the assistant on an earlier turn."""

    text: str


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, ReasoningBlock]


@dataclass(frozen=True, slots=True)
class Message:
    """A single conversation turn handed to an adapter.

    ``content`` is either a plain string or an ordered tuple of content
    blocks. Assistant turns may also carry replay metadata returned by the
    backend on a previous call (``reasoning_content`` and
    ``reasoning_details``).
    """

    role: MessageRole
    content: str | tuple[ContentBlock, ...]
    reasoning_content: str | None = None
    reasoning_details: tuple[Mapping[str, Any], ...] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, MessageRole):
            try:
                object.__setattr__(self, "role", MessageRole(self.role))
            except ValueError as exc:
                msg = f"unsupported role '{self.role}'"
                raise AdapterError(msg) from exc

        if isinstance(self.content, str):
            pass
        elif isinstance(self.content, Sequence):
            blocks = tuple(self.content)
            for block in blocks:
                if not isinstance(block, _BLOCK_TYPES):
                    msg = f"unsupported content block {type(block).__name__}"
                    raise AdapterError(msg)
            object.__setattr__(self, "content", blocks)
        else:
            msg = "message content must be a string or a sequence of blocks"
            raise AdapterError(msg)

        if self.reasoning_details is not None:
            object.__setattr__(self, "reasoning_details", tuple(self.reasoning_details))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Return the content as blocks, wrapping plain strings in a text block."""

        if isinstance(self.content, str):
            return (TextBlock(self.content),)
        return self.content


_BLOCK_TYPES = (TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, ReasoningBlock)


def parse_messages(payload: Sequence[Mapping[str, Any]]) -> list[Message]:
    """Build :class:`Message` objects from Anthropic-style mappings."""

    if isinstance(payload, (str, bytes, bytearray)) or not isinstance(payload, Sequence):
        msg = "messages must be provided as a sequence of mappings"
        raise AdapterError(msg)

    messages: list[Message] = []
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            msg = f"messages[{index}] must be a mapping"
            raise AdapterError(msg)

        raw_role = item.get("role")
        if not isinstance(raw_role, str):
            msg = f"messages[{index}].role must be a string"
            raise AdapterError(msg)

        raw_content = item.get("content", "")
        if raw_content is None:
            content: str | tuple[ContentBlock, ...] = ""
        elif isinstance(raw_content, str):
            content = raw_content
        elif isinstance(raw_content, Sequence):
            lenient = raw_role.strip().lower() == "assistant"
            content = tuple(
                block
                for position, part in enumerate(raw_content)
                if (
                    block := _parse_block(
                        part,
                        path=f"messages[{index}].content[{position}]",
                        lenient=lenient,
                    )
                )
                is not None
            )
        else:
            msg = f"messages[{index}].content must be a string or a list of blocks"
            raise AdapterError(msg)

        details = item.get("reasoning_details")
        if details is not None and not isinstance(details, Sequence):
            msg = f"messages[{index}].reasoning_details must be a list"
            raise AdapterError(msg)

        messages.append(
            Message(
                role=raw_role.strip().lower(),
                content=content,
                reasoning_content=item.get("reasoning_content"),
                reasoning_details=tuple(details) if details is not None else None,
            )
        )

    return messages


def _parse_block(part: Any, *, path: str, lenient: bool = False) -> ContentBlock | None:
    if not isinstance(part, Mapping):
        msg = f"{path} must be a mapping"
        raise AdapterError(msg)

    block_type = part.get("type")
    if block_type == "text":
        return TextBlock(text=part.get("text", ""))
    if block_type == "image":
        return ImageBlock(source=_parse_image_source(part.get("source"), path=f"{path}.source"))
    if block_type == "tool_use":
        return ToolUseBlock(id=part.get("id", ""), name=part.get("name", ""), input=part.get("input") or {})
    if block_type == "tool_result":
        raw = part.get("content", "")
        if raw is None:
            raw = ""
        if isinstance(raw, str):
            content: str | tuple[TextBlock | ImageBlock, ...] = raw
        else:
            parsed = [_parse_block(inner, path=f"{path}.content") for inner in raw]
            content = tuple(block for block in parsed if isinstance(block, (TextBlock, ImageBlock)))
        return ToolResultBlock(tool_use_id=part.get("tool_use_id", ""), content=content)
    if block_type in ("reasoning", "thinking"):
        text = part.get("text")
        if not isinstance(text, str):
            text = part.get("thinking")
        if not isinstance(text, str):
            return None
        return ReasoningBlock(text=text)

    # Assistant turns may echo block types that are never replayed (e.g. redacted thinking).
    if lenient:
        return None
    msg = f"{path} has unsupported block type {block_type!r}"
    raise AdapterError(msg)


def _parse_image_source(source: Any, *, path: str) -> ImageSource:
    if not isinstance(source, Mapping):
        msg = f"{path} must be a mapping"
        raise AdapterError(msg)
    return ImageSource(
        type=source.get("type"),
        media_type=source.get("media_type"),
        data=source.get("data"),
        url=source.get("url"),
    )


def _ensure_json_compatible(value: Any, *, path: str) -> None:
    if isinstance(value, Mapping):
        for key, inner in value.items():
            if not isinstance(key, str):
                msg = f"{path} keys must be strings"
                raise AdapterError(msg)
            _ensure_json_compatible(inner, path=f"{path}.{key}")
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, item in enumerate(value):
            _ensure_json_compatible(item, path=f"{path}[{index}]")
        return

    if isinstance(value, (bool, type(None), str)):
        return

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            msg = f"{path} contains non-finite float values"
            raise AdapterError(msg)
        return

    msg = f"{path} contains unsupported value type {type(value).__name__}"
    raise AdapterError(msg)


def _freeze_json_structure(value: Any) -> Any:
    if isinstance(value, dict):
        frozen_dict = {key: _freeze_json_structure(inner) for key, inner in value.items()}
        return MappingProxyType(frozen_dict)

    if isinstance(value, list):
        return tuple(_freeze_json_structure(inner) for inner in value)

    return value


def _thaw_json_structure(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw_json_structure(inner) for key, inner in value.items()}

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_thaw_json_structure(inner) for inner in value]

    return value


def ensure_json_compatible(value: Any, *, path: str) -> None:
    """Raise :class:`AdapterError` unless ``value`` is plain JSON data."""

    _ensure_json_compatible(value, path=path)


def freeze_json(value: Any) -> Any:
    """Return an immutable copy of a JSON structure."""

    return _freeze_json_structure(_thaw_json_structure(value))


def thaw_json(value: Any) -> Any:
    """Return a plain ``dict``/``list`` copy of a frozen JSON structure."""

    return _thaw_json_structure(value)


def dumps_json(value: Any) -> str:
    """Serialize a (possibly frozen) JSON structure compactly."""

    return json.dumps(_thaw_json_structure(value), separators=(",", ":"), ensure_ascii=False)
