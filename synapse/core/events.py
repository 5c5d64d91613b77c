"""Progress events and the channel that carries them to the caller.

Architectural role:
    Replaces a bare callback with an explicit sink abstraction. The engine only
    knows `EventSink`; transports pick a concrete sink (`EventChannel` for HTTP
    streaming, a printing sink for the CLI).

Ordering:
    Events are delivered strictly in emission order. No event kind terminates the
    stream; end-of-stream belongs to the transport (`EventChannel.finish`).

Backpressure and cancellation:
    `EventChannel` is a bounded `asyncio.Queue`. `send` waits while the consumer is
    behind. `close` marks the channel cancelled (consumer gone), drops buffered
    events, and makes every later `send` raise `StreamClosedError`.

Wire format:
    One JSON object per line: `{"type": <kind>, "data": <payload>}`.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Protocol

from synapse.exceptions import StreamClosedError


class EventKind(str, Enum):
    THOUGHT = "thought"
    TEXT = "text"
    FINAL_OUTPUT = "final_output"
    TABLE = "table"
    CHART = "chart"
    EMAIL_PREVIEW = "email_preview"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """One streamed unit of output; `payload` shape depends on `kind`."""

    kind: EventKind
    payload: Any

    def to_record(self) -> dict[str, Any]:
        return {"type": self.kind.value, "data": self.payload}

    def to_json_line(self) -> str:
        return json.dumps(self.to_record(), ensure_ascii=False) + "\n"


class EventSink(Protocol):
    """Destination for progress events."""

    @property
    def closed(self) -> bool:
        """Whether the consumer is gone and no further events may be sent."""
        ...

    async def send(self, event: ProgressEvent) -> None:
        """Deliver one event, waiting if the consumer applies backpressure."""
        ...


class Emitter:
    """Typed front for an `EventSink` used by the engine and pipelines.

    Checks the sink before every emission; once it is closed, `emit` raises
    `StreamClosedError` so the engine can stop without writing further events.
    """

    def __init__(self, sink: EventSink) -> None:
        self.sink = sink

    @property
    def closed(self) -> bool:
        return self.sink.closed

    async def emit(self, kind: EventKind, payload: Any) -> None:
        if self.sink.closed:
            raise StreamClosedError("Event sink closed")
        await self.sink.send(ProgressEvent(kind, payload))

    async def thought(self, message: str) -> None:
        await self.emit(EventKind.THOUGHT, message)

    async def text(self, chunk: str) -> None:
        await self.emit(EventKind.TEXT, chunk)

    async def final_output(self, payload: Any) -> None:
        await self.emit(EventKind.FINAL_OUTPUT, payload)

    async def error(self, message: str) -> None:
        await self.emit(EventKind.ERROR, message)


_END = object()


class EventChannel:
    """Bounded in-process channel between the engine and a streaming transport.

    Producer side: `send(event)` then `finish()` once the engine returns.
    Consumer side: `async for event in channel`, or `close()` to cancel.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: ProgressEvent) -> None:
        if self._closed:
            raise StreamClosedError("Event channel closed by consumer")
        if self._finished:
            raise StreamClosedError("Event channel already finished")
        await self._queue.put(event)

    async def finish(self) -> None:
        """Signal normal end of stream to the consumer."""
        if self._closed or self._finished:
            return
        self._finished = True
        await self._queue.put(_END)

    def close(self) -> None:
        """Cancel from the consumer side and unblock a waiting producer."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while not self._closed:
            item = await self._queue.get()
            if item is _END:
                return
            yield item
