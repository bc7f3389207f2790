"""
Progress events and their server-push encoding.

The orchestrator reports through the synchronous `EventSink.emit()` interface;
it never sees an HTTP response. The HTTP layer plugs in a `QueueEventSink`
and drains it into `text/event-stream` frames.
"""

from __future__ import annotations

import json
import logging
import queue
from typing import Iterator, List, Optional, Protocol, Union

from app.api.v1.schemas import CompletePayload, ErrorPayload, ProgressPayload

logger = logging.getLogger(__name__)

ProgressEvent = Union[ProgressPayload, CompletePayload, ErrorPayload]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}
SSE_MEDIA_TYPE = "text/event-stream"


class EventSink(Protocol):
    def emit(self, event: ProgressEvent) -> None:
        ...


def is_terminal(event: ProgressEvent) -> bool:
    return event.type in ("complete", "error")


def event_to_dict(event: ProgressEvent) -> dict:
    return event.model_dump(by_alias=True, exclude_none=True, mode="json")


def encode_event(event: ProgressEvent) -> str:
    """Encode one event as an SSE frame: `data: <json>\\n\\n`."""
    payload = json.dumps(event_to_dict(event), ensure_ascii=False)
    return f"data: {payload}\n\n"


class ListEventSink:
    """Collects events in memory; used by tests and batch callers."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[ProgressEvent]:
        return [event for event in self.events if event.type == event_type]


class QueueEventSink:
    """
    Thread-safe sink bridging a worker thread to a streaming response.

    Events emitted after the terminal one are dropped, so a stream carries
    exactly one `complete` or `error`.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            logger.warning("Dropping %s event emitted after stream end", event.type)
            return
        if is_terminal(event):
            self._closed = True
        self._queue.put(event)

    def frames(self, poll_timeout: Optional[float] = None) -> Iterator[str]:
        """
        Yield encoded frames until a terminal event has been sent.

        With `poll_timeout`, blocks at most that long per event and then
        stops with an error frame; None waits indefinitely.
        """
        while True:
            try:
                event = self._queue.get(timeout=poll_timeout)
            except queue.Empty:
                yield encode_event(ErrorPayload(error="Progress stream timed out"))
                return
            yield encode_event(event)
            if is_terminal(event):
                return
