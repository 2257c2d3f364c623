"""Pure conversion helpers between switchyard messages and backend wire formats.

Two outbound formats are supported:

* the "part" message format consumed by part-stream backends
  (:func:`messages_to_sdk`), which preserves the exact ordering of user text
  and tool results;
* the chat-completions format (:func:`messages_to_openai`), which places tool
  results ahead of any other user content in the same turn.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ..errors import AdapterError
from ..message import (
    ImageBlock,
    ImageSource,
    Message,
    MessageRole,
    ReasoningBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    dumps_json,
    thaw_json,
)
from .toolcalls import UNKNOWN_TOOL_NAME

EMPTY_TOOL_RESULT = "(empty)"
IMAGE_PLACEHOLDER = "(image)"
IMAGE_FOLLOWS_PLACEHOLDER = "(see following user message for image)"


def messages_to_sdk(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert switchyard messages into the part-stream message format."""

    _require_messages(messages)
    tool_names = _tool_names_by_id(messages)

    converted: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message.content, str):
            converted.append({"role": message.role.value, "content": message.content})
        elif message.role is MessageRole.ASSISTANT:
            converted.append(_assistant_to_sdk(message))
        elif message.role is MessageRole.SYSTEM:
            text = "\n".join(block.text for block in message.content if isinstance(block, TextBlock))
            converted.append({"role": "system", "content": text})
        else:
            converted.extend(_user_to_sdk(message, tool_names))

    return converted


def _user_to_sdk(message: Message, tool_names: Mapping[str, str]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    parts: list[dict[str, Any]] = []
    tool_results: list[dict[str, Any]] = []

    def flush_user_parts() -> None:
        if parts:
            converted.append({"role": "user", "content": list(parts)})
            parts.clear()

    def flush_tool_results() -> None:
        if tool_results:
            converted.append({"role": "tool", "content": list(tool_results)})
            tool_results.clear()

    for block in message.content:
        if isinstance(block, TextBlock):
            flush_tool_results()
            parts.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageBlock):
            flush_tool_results()
            image_part = _image_to_sdk(block.source)
            if image_part is not None:
                parts.append(image_part)
        elif isinstance(block, ToolResultBlock):
            flush_user_parts()
            tool_results.append(
                {
                    "type": "tool-result",
                    "toolCallId": block.tool_use_id,
                    "toolName": tool_names.get(block.tool_use_id, UNKNOWN_TOOL_NAME),
                    "output": {"type": "text", "value": normalize_tool_result_content(block.content)},
                }
            )

    flush_tool_results()
    flush_user_parts()
    return converted


def _assistant_to_sdk(message: Message) -> dict[str, Any]:
    text_parts: list[str] = []
    reasoning_parts: list[str] = []
    content: list[dict[str, Any]] = []

    def flush_text() -> None:
        if text_parts:
            content.append({"type": "text", "text": "\n".join(text_parts)})
            text_parts.clear()

    for block in message.content:
        if isinstance(block, TextBlock):
            text_parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            flush_text()
            content.append(
                {
                    "type": "tool-call",
                    "toolCallId": block.id,
                    "toolName": block.name,
                    "input": thaw_json(block.input),
                }
            )
        elif isinstance(block, ReasoningBlock):
            reasoning_parts.append(block.text)

    flush_text()

    payload: dict[str, Any] = {
        "role": "assistant",
        "content": content or [{"type": "text", "text": ""}],
    }

    reasoning_content = message.reasoning_content or "\n".join(reasoning_parts).strip()
    if reasoning_content:
        payload["providerOptions"] = {"openaiCompatible": {"reasoning_content": reasoning_content}}
    return payload


def _image_to_sdk(source: ImageSource) -> dict[str, Any] | None:
    if source.type == "base64" and source.media_type and source.data:
        return {
            "type": "image",
            "image": f"data:{source.media_type};base64,{source.data}",
            "mimeType": source.media_type,
        }
    if source.type == "url" and source.url:
        return {"type": "image", "image": source.url}
    return None


def normalize_tool_result_content(
    content: str | Sequence[TextBlock | ImageBlock],
    *,
    image_placeholder: str = IMAGE_PLACEHOLDER,
) -> str:
    """Flatten tool-result content into the single string backends accept."""

    if isinstance(content, str):
        text = content
    else:
        text = "\n".join(
            block.text if isinstance(block, TextBlock) else image_placeholder for block in content
        )
    return text or EMPTY_TOOL_RESULT


def messages_to_openai(
    messages: Sequence[Message],
    *,
    normalize_tool_call_id: Callable[[str], str] | None = None,
    merge_tool_result_text: bool = False,
) -> list[dict[str, Any]]:
    """Convert switchyard messages into the chat-completions format.

    ``normalize_tool_call_id`` rewrites every tool call id for backends with
    strict id formats. With ``merge_tool_result_text`` set, trailing user text
    that accompanies tool results is appended to the last tool message instead
    of opening a new user turn.
    """

    _require_messages(messages)
    normalize_id = normalize_tool_call_id or (lambda call_id: call_id)

    converted: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message.content, str):
            payload: dict[str, Any] = {"role": message.role.value, "content": message.content}
            if message.role is MessageRole.ASSISTANT and message.reasoning_details is not None:
                payload["reasoning_details"] = _map_reasoning_details(message.reasoning_details)
            converted.append(payload)
        elif message.role is MessageRole.ASSISTANT:
            converted.append(_assistant_to_openai(message, normalize_id))
        elif message.role is MessageRole.SYSTEM:
            text = "\n".join(block.text for block in message.content if isinstance(block, TextBlock))
            converted.append({"role": "system", "content": text})
        else:
            _append_user_openai(converted, message, normalize_id, merge_tool_result_text)

    return converted


def messages_to_r1(system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Render a conversation for reasoning models that reject system messages.

    The system prompt opens the conversation as a user turn, and consecutive
    user or assistant messages without tool calls are merged into one.
    """

    _require_messages(messages)
    opening = Message(role=MessageRole.USER, content=system_prompt)
    merged: list[dict[str, Any]] = []
    for payload in messages_to_openai([opening, *messages]):
        previous = merged[-1] if merged else None
        if previous is not None and _can_merge(previous, payload):
            previous["content"] = _merge_content(previous["content"], payload["content"])
        else:
            merged.append(payload)
    return merged


def _can_merge(previous: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
    return (
        previous["role"] == current["role"]
        and current["role"] in ("user", "assistant")
        and "tool_calls" not in previous
        and "tool_calls" not in current
    )


def _merge_content(left: Any, right: Any) -> Any:
    if isinstance(left, str) and isinstance(right, str):
        return f"{left}\n{right}"
    return _as_parts(left) + _as_parts(right)


def _as_parts(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)


def _append_user_openai(
    converted: list[dict[str, Any]],
    message: Message,
    normalize_id: Callable[[str], str],
    merge_tool_result_text: bool,
) -> None:
    tool_blocks = [block for block in message.content if isinstance(block, ToolResultBlock)]
    other_blocks = [
        block
        for block in message.content
        if isinstance(block, ImageBlock) or (isinstance(block, TextBlock) and block.text)
    ]

    for block in tool_blocks:
        converted.append(
            {
                "role": "tool",
                "tool_call_id": normalize_id(block.tool_use_id),
                "content": normalize_tool_result_content(
                    block.content, image_placeholder=IMAGE_FOLLOWS_PLACEHOLDER
                ),
            }
        )

    if not other_blocks:
        return

    only_text = all(isinstance(block, TextBlock) for block in other_blocks)
    if merge_tool_result_text and tool_blocks and only_text and converted[-1]["role"] == "tool":
        additional = "\n".join(block.text for block in other_blocks)
        converted[-1]["content"] = f"{converted[-1]['content']}\n\n{additional}"
        return

    parts: list[dict[str, Any]] = []
    for block in other_blocks:
        if isinstance(block, ImageBlock):
            parts.append({"type": "image_url", "image_url": {"url": _image_url(block.source)}})
        else:
            parts.append({"type": "text", "text": block.text})
    converted.append({"role": "user", "content": parts})


def _assistant_to_openai(message: Message, normalize_id: Callable[[str], str]) -> dict[str, Any]:
    rendered: list[str] = []
    tool_calls: list[dict[str, Any]] = []
    for block in message.content:
        if isinstance(block, ToolUseBlock):
            tool_calls.append(
                {
                    "id": normalize_id(block.id),
                    "type": "function",
                    "function": {"name": block.name, "arguments": dumps_json(block.input)},
                }
            )
        elif isinstance(block, ReasoningBlock):
            rendered.append(f"<think>{block.text}</think>")
        elif isinstance(block, TextBlock):
            rendered.append(block.text)
        elif isinstance(block, ImageBlock):
            rendered.append("")

    payload: dict[str, Any] = {"role": "assistant", "content": "\n".join(rendered)}
    if message.reasoning_details is not None:
        payload["reasoning_details"] = _map_reasoning_details(message.reasoning_details)
    if tool_calls:
        payload["tool_calls"] = tool_calls
    return payload


def _image_url(source: ImageSource) -> str | None:
    if source.type == "url":
        return source.url
    return f"data:{source.media_type};base64,{source.data}"


def _map_reasoning_details(details: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    # The responses format rejects replayed ids without server-side storage.
    mapped: list[dict[str, Any]] = []
    for detail in details:
        plain = dict(thaw_json(detail))
        if plain.get("format") == "openai-responses-v1" and plain.get("id"):
            plain.pop("id")
        mapped.append(plain)
    return mapped


def consolidate_reasoning_details(details: Sequence[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    """Merge streamed reasoning detail fragments into one entry per index.

    Text and summary fragments are concatenated, the last signature and id
    win, encrypted entries without data are dropped, and only the last
    encrypted blob per index is kept.
    """

    if not details:
        return []

    grouped: dict[int, list[Mapping[str, Any]]] = {}
    for detail in details:
        if detail.get("type") == "reasoning.encrypted" and not detail.get("data"):
            continue
        grouped.setdefault(detail.get("index") or 0, []).append(detail)

    consolidated: list[dict[str, Any]] = []
    for index, group in grouped.items():
        text = ""
        summary = ""
        signature = None
        detail_id = None
        detail_format = "unknown"
        detail_type = "reasoning.text"

        for detail in group:
            text += detail.get("text") or ""
            summary += detail.get("summary") or ""
            signature = detail.get("signature") or signature
            detail_id = detail.get("id") or detail_id
            detail_format = detail.get("format") or detail_format
            detail_type = detail.get("type") or detail_type

        shared = {"signature": signature, "id": detail_id, "format": detail_format, "index": index}
        if text:
            consolidated.append(_compact(type=detail_type, text=text, **shared))
        elif summary:
            consolidated.append(_compact(type=detail_type, summary=summary, **shared))

        last_encrypted = None
        for detail in group:
            if detail.get("data"):
                last_encrypted = _compact(
                    type=detail.get("type"),
                    data=detail.get("data"),
                    signature=detail.get("signature"),
                    id=detail.get("id"),
                    format=detail.get("format"),
                    index=index,
                )
        if last_encrypted is not None:
            consolidated.append(last_encrypted)

    return consolidated


def _compact(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


def _tool_names_by_id(messages: Sequence[Message]) -> dict[str, str]:
    names: dict[str, str] = {}
    for message in messages:
        if message.role is not MessageRole.ASSISTANT or isinstance(message.content, str):
            continue
        for block in message.content:
            if isinstance(block, ToolUseBlock):
                names[block.id] = block.name
    return names


def _require_messages(messages: Sequence[Message]) -> None:
    if isinstance(messages, (str, bytes, bytearray)) or not isinstance(messages, Sequence):
        msg = "messages must be provided as a sequence of Message instances"
        raise AdapterError(msg)
    for index, message in enumerate(messages):
        if not isinstance(message, Message):
            msg = f"messages[{index}] must be a Message"
            raise AdapterError(msg)


__all__ = [
    "consolidate_reasoning_details",
    "messages_to_openai",
    "messages_to_r1",
    "messages_to_sdk",
    "normalize_tool_result_content",
]
