"""Chat-completions streaming shared by the bespoke router adapters."""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from typing import Any

from ..errors import AdapterError
from .events import StreamEvent, UsageEvent
from .normalize import ChatChunkNormalizer, finish_reason
from .stream import TransportStreamIterator, coerce_mapping
from .toolcalls import ToolCallAccumulator
from .usage import UsageFields, normalize_usage


def create_chat_stream(client: Any, request: Mapping[str, Any]) -> Any:
    """Create a streaming iterator using the provided chat-completions client."""

    return client.chat.completions.create(**request)


class ChatStreamIterator(TransportStreamIterator):
    """Iterator over chat-completions chunks.

    Pending tool calls are closed when a chunk carries a finish reason listed
    in ``end_on_finish_reasons`` (any finish reason when it is ``None``). The
    last ``usage`` payload of the stream becomes the final usage event. An
    in-band error chunk ends the stream after its error event.
    """

    def __init__(
        self,
        open_stream: Callable[[], Any],
        normalizer: ChatChunkNormalizer,
        *,
        accumulator: ToolCallAccumulator | None = None,
        end_on_finish_reasons: Collection[str] | None = None,
        usage_fields: UsageFields | None = None,
    ) -> None:
        super().__init__(open_stream, normalizer, accumulator=accumulator)
        self._end_on_finish_reasons = end_on_finish_reasons
        self._usage_fields = usage_fields
        self._last_usage: Mapping[str, Any] | None = None

    def _after_chunk(self, chunk: Mapping[str, Any]) -> list[StreamEvent]:
        if chunk.get("error") is not None:
            self._drained = True
            return []

        events: list[StreamEvent] = []
        reason = finish_reason(chunk)
        if reason is not None and (
            self._end_on_finish_reasons is None or reason in self._end_on_finish_reasons
        ):
            events.extend(self.accumulator.end_pending())

        usage = chunk.get("usage")
        if isinstance(usage, Mapping):
            self._last_usage = usage
        return events

    def _final_usage(self) -> UsageEvent | None:
        if self._last_usage is None:
            return None
        return normalize_usage(self._last_usage, fields=self._usage_fields)


def completion_text(response: Any) -> str:
    """Return the first choice's message content from a chat completion."""

    payload = coerce_mapping(response, path="completion response")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        msg = "completion response missing choices"
        raise AdapterError(msg)

    choice = coerce_mapping(choices[0], path="completion choice")
    message = choice.get("message")
    if message is None:
        return ""
    content = coerce_mapping(message, path="completion message").get("content")
    return content if isinstance(content, str) else ""


__all__ = ["ChatStreamIterator", "completion_text", "create_chat_stream"]
