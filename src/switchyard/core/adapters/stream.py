"""Base iterator driving backend streams through normalization and reconstruction."""

from __future__ import annotations

import abc
import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any, AsyncIterator, Deque, List, Protocol

from ..errors import AdapterError
from .events import ErrorEvent, StreamEvent, TextEvent, UsageEvent
from .toolcalls import ToolCallAccumulator

LOGGER = logging.getLogger(__name__)


class StreamNormalizer(Protocol):
    def normalize_chunk(self, chunk: Mapping[str, Any]) -> List[StreamEvent]:
        """Map one raw backend frame into zero or more canonical events."""


class BaseStreamIterator(AsyncIterator[StreamEvent], metaclass=abc.ABCMeta):
    """Shared async iterator driving backend-specific streaming adapters.

    Subclasses source raw frames by implementing :meth:`_get_next_chunk`. Each
    frame is normalized through a :class:`StreamNormalizer` and every resulting
    event is routed through the stream's :class:`ToolCallAccumulator`, so the
    consumer sees a linear sequence of canonical events with exactly one
    complete :class:`~switchyard.core.adapters.events.ToolCallEvent` per call.

    When the backend stream is exhausted, pending tool calls are flushed and
    then the usage event (if any) is emitted. Transport failures and frames
    that cannot be normalized surface as a single
    ``ErrorEvent(kind="StreamError")`` after which iteration stops.
    """

    def __init__(
        self,
        normalizer: StreamNormalizer,
        *,
        accumulator: ToolCallAccumulator | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._accumulator = accumulator or ToolCallAccumulator()
        self._buffer: Deque[StreamEvent] = deque()
        self._closed = False
        self._drained = False
        self._close_lock = asyncio.Lock()

    @property
    def accumulator(self) -> ToolCallAccumulator:
        return self._accumulator

    def __aiter__(self) -> BaseStreamIterator:
        return self

    async def __anext__(self) -> StreamEvent:
        while True:
            if self._buffer:
                return self._buffer.popleft()

            if self._closed or self._drained:
                await self.aclose()
                raise StopAsyncIteration

            try:
                chunk = await self._get_next_chunk()
            except StopAsyncIteration:
                self._drained = True
                flush = getattr(self._normalizer, "flush", None)
                if flush is not None:
                    for event in flush():
                        self._buffer.extend(self._accumulator.observe(event))
                self._buffer.extend(self._accumulator.finish())
                usage = self._final_usage()
                if usage is not None:
                    self._buffer.append(usage)
                continue
            except Exception as exc:
                LOGGER.warning("backend stream failed: %s", exc)
                self._fail(exc)
                continue

            try:
                events = self._process_chunk(chunk)
            except Exception as exc:
                LOGGER.warning("could not normalize backend frame: %s", exc)
                self._fail(exc)
                continue
            self._buffer.extend(events)

    async def aclose(self) -> None:
        """Release backend resources; pending tool calls are discarded."""

        async with self._close_lock:
            if self._closed:
                return

            self._closed = True
            self._buffer.clear()
            await self._on_close()

    async def close(self) -> None:
        await self.aclose()

    def _fail(self, exc: Exception) -> None:
        self._drained = True
        self._buffer.append(ErrorEvent(kind="StreamError", message=str(exc)))

    def _process_chunk(self, chunk: Mapping[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for event in self._normalizer.normalize_chunk(chunk):
            events.extend(self._accumulator.observe(event))
        events.extend(self._after_chunk(chunk))
        return events

    @abc.abstractmethod
    async def _get_next_chunk(self) -> Mapping[str, Any]:
        """Retrieve the next raw frame, raising ``StopAsyncIteration`` at the end."""

    def _after_chunk(self, chunk: Mapping[str, Any]) -> list[StreamEvent]:
        """Inspect a frame after normalization; may emit extra events."""

        return []

    def _final_usage(self) -> UsageEvent | None:
        """Return the usage event emitted after the end-of-stream flush."""

        return None

    async def _on_close(self) -> None:
        """Allow subclasses to dispose backend resources when closing."""


class TransportStreamIterator(BaseStreamIterator):
    """Stream iterator over a caller-supplied transport stream.

    ``open_stream`` is invoked lazily on the first pull so that failures while
    opening the request surface in-band like any other transport failure. It
    may return an async iterable or an awaitable resolving to one.
    """

    def __init__(
        self,
        open_stream: Callable[[], Any],
        normalizer: StreamNormalizer,
        *,
        accumulator: ToolCallAccumulator | None = None,
    ) -> None:
        self._open_stream = open_stream
        self._stream: Any = None
        self._iterator: Any = None
        self._stream_closed = False
        super().__init__(normalizer, accumulator=accumulator)

    async def _get_next_chunk(self) -> Mapping[str, Any]:
        if self._iterator is None:
            stream = self._open_stream()
            if inspect.isawaitable(stream):
                stream = await stream
            self._stream = stream
            self._iterator = _coerce_async_iterator(stream)

        raw_chunk = await self._iterator.__anext__()
        return coerce_mapping(raw_chunk, path="stream chunk")

    async def _on_close(self) -> None:
        if self._stream_closed or self._stream is None:
            return
        self._stream_closed = True

        for closer_name in ("aclose", "close"):
            closer = getattr(self._stream, closer_name, None)
            if closer is None:
                continue
            result = closer()
            if inspect.isawaitable(result):
                await result
            return


def _coerce_async_iterator(stream: Any) -> Any:
    iterator_factory = getattr(stream, "__aiter__", None)
    if iterator_factory is None or not callable(iterator_factory):
        msg = "backend stream must support async iteration"
        raise AdapterError(msg)

    iterator = iterator_factory()
    if not hasattr(iterator, "__anext__"):
        msg = "backend stream iterator must define '__anext__'"
        raise AdapterError(msg)
    return iterator


def coerce_mapping(value: Any, *, path: str) -> Mapping[str, Any]:
    """Return ``value`` as a mapping, dumping SDK model objects when needed."""

    if isinstance(value, Mapping):
        return value

    if hasattr(value, "model_dump"):
        mapping = value.model_dump()
        if isinstance(mapping, Mapping):
            return mapping

    if hasattr(value, "dict"):
        mapping = value.dict()
        if isinstance(mapping, Mapping):
            return mapping

    if hasattr(value, "__dict__"):
        return vars(value)

    msg = f"{path} must be a mapping"
    raise AdapterError(msg)


async def replay_stream(iterator: BaseStreamIterator) -> List[StreamEvent]:
    """Collect all events emitted by a stream iterator."""

    events: List[StreamEvent] = []
    try:
        async for event in iterator:
            events.append(event)
    finally:
        await iterator.aclose()
    return events


async def replay_text(events: AsyncIterator[StreamEvent]) -> str:
    """Concatenate the answer text of a stream, raising on an in-band error."""

    fragments: List[str] = []
    closer = getattr(events, "aclose", None)

    try:
        async for event in events:
            if isinstance(event, TextEvent):
                fragments.append(event.text)
            elif isinstance(event, ErrorEvent):
                raise AdapterError(event.message)
    finally:
        if closer is not None and callable(closer):
            result = closer()
            if inspect.isawaitable(result):
                await result

    return "".join(fragments)


__all__ = [
    "BaseStreamIterator",
    "StreamNormalizer",
    "TransportStreamIterator",
    "coerce_mapping",
    "replay_stream",
    "replay_text",
]
