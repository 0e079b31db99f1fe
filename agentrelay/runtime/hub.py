"""Subscriber hub -- fans one session's events out to every connected sink.

A session may have any number of subscribers (one per browser tab).  The hub
never blocks on a subscriber: ``Sink.send`` is synchronous and a sink that
cannot accept an event is dropped on the spot, so a stalled or vanished
client never delays delivery to the others or the run producing the events.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from sse_starlette import ServerSentEvent

from agentrelay.runtime.models.enums import EventType
from agentrelay.runtime.models.events import RelayEvent


class SinkClosedError(RuntimeError):
    """Raised by ``Sink.send`` when the sink can no longer accept events."""


@runtime_checkable
class Sink(Protocol):
    """Output channel of one subscriber."""

    def send(self, event: ServerSentEvent) -> None:
        """Deliver *event* without blocking.  Raises ``SinkClosedError`` on failure."""
        ...

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register *callback* to run once when the sink closes."""
        ...

    def close(self) -> None: ...


class QueueSink:
    """Sink backed by a bounded queue, drained by the SSE response.

    A full queue means the consumer stopped reading; the send fails and the
    sink closes itself so the hub drops it.
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: asyncio.Queue[ServerSentEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._callbacks: list[Callable[[], None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ServerSentEvent) -> None:
        if self._closed:
            raise SinkClosedError
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.close()
            msg = "subscriber queue full"
            raise SinkClosedError(msg) from None

    def on_close(self, callback: Callable[[], None]) -> None:
        if self._closed:
            callback()
        else:
            self._callbacks.append(callback)

    def close(self) -> None:
        """Close the sink and fire close callbacks.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked on an empty queue.
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    async def __aiter__(self) -> AsyncIterator[ServerSentEvent]:
        while True:
            event = await self._queue.get()
            if event is None or self._closed:
                return
            yield event


class SubscriberHub:
    """Per-session sets of connected sinks with a broadcast primitive.

    Only the run coordinator broadcasts, one event at a time, so delivery
    order to a sink matches broadcast order.
    """

    def __init__(self) -> None:
        self._sinks: dict[str, set[Sink]] = {}

    # -- Subscription ----------------------------------------------------------

    def subscribe(self, session_id: str, sink: Sink) -> None:
        """Register *sink*; it is removed automatically when it closes."""
        self._sinks.setdefault(session_id, set()).add(sink)
        sink.on_close(lambda: self.unsubscribe(session_id, sink))
        logger.debug("Hub: subscriber attached to {} (total={})", session_id, self.subscriber_count(session_id))

    def unsubscribe(self, session_id: str, sink: Sink) -> None:
        """Remove *sink*.  Releases the session's set when it becomes empty."""
        sinks = self._sinks.get(session_id)
        if sinks is None or sink not in sinks:
            return
        sinks.discard(sink)
        if not sinks:
            del self._sinks[session_id]
        logger.debug("Hub: subscriber detached from {} (remaining={})", session_id, len(sinks))

    def close_all(self, session_id: str) -> int:
        """Close every sink of *session_id* (the session is gone)."""
        sinks = list(self._sinks.pop(session_id, ()))
        for sink in sinks:
            sink.close()
        return len(sinks)

    # -- Query -----------------------------------------------------------------

    def has_subscribers(self, session_id: str) -> bool:
        return bool(self._sinks.get(session_id))

    def subscriber_count(self, session_id: str) -> int:
        return len(self._sinks.get(session_id, ()))

    # -- Broadcast -------------------------------------------------------------

    def send_to(
        self,
        sink: Sink,
        session_id: str,
        event_type: EventType,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver one event to a single subscribed sink (e.g. a greeting)."""
        frame = RelayEvent(event_type=event_type, payload=payload or {}).to_sse()
        try:
            sink.send(frame)
        except Exception as exc:
            logger.debug("Hub: dropping subscriber of {} ({})", session_id, exc)
            self.unsubscribe(session_id, sink)
            return False
        return True

    def broadcast(self, session_id: str, event_type: EventType, payload: dict[str, Any] | None = None) -> int:
        """Deliver one event to every sink of *session_id*.

        Broadcasting to a session without subscribers is a silent no-op.
        Returns the number of sinks the event reached.
        """
        sinks = self._sinks.get(session_id)
        if not sinks:
            return 0

        frame = RelayEvent(event_type=event_type, payload=payload or {}).to_sse()
        delivered = 0
        # Iterate over a snapshot: failing sinks are removed mid-loop.
        for sink in list(sinks):
            try:
                sink.send(frame)
            except Exception as exc:
                logger.debug("Hub: dropping subscriber of {} ({})", session_id, exc)
                self.unsubscribe(session_id, sink)
            else:
                delivered += 1
        return delivered
