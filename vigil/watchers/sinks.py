"""Event sinks — where fired WatcherEvents are delivered.

The supervisor pushes each fired event into an EventSink and moves on: a
sink failure is logged by the watcher loop and never blocks, retries or
cancels scheduling.  Delivery is at-least-once; duplicate suppression, if
needed, is the sink's job.

Implementations:
  - NullEventSink    → discards events (default)
  - LogEventSink     → NDJSON append-only file
  - QueueEventSink   → bounded asyncio.Queue for an in-process consumer
  - FanoutEventSink  → publishes to several sinks at once
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path

from vigil.exceptions import SinkError
from vigil.logging import get_logger
from vigil.watchers.models import WatcherEvent

log = get_logger(__name__)


class EventSink(ABC):
    """Abstract event sink.  All implementations must be safe for concurrent async use."""

    @abstractmethod
    async def publish(self, event: WatcherEvent) -> None:
        """Accept *event* for downstream delivery.

        Raise ``SinkError`` when the event could not be accepted.
        """


# ---------------------------------------------------------------------------
# NullEventSink
# ---------------------------------------------------------------------------


class NullEventSink(EventSink):
    """Discards all events.  Used when no delivery is configured."""

    async def publish(self, event: WatcherEvent) -> None:
        pass


# ---------------------------------------------------------------------------
# LogEventSink
# ---------------------------------------------------------------------------


class LogEventSink(EventSink):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        sink = LogEventSink(Path("~/.vigil/events.ndjson"))
        await sink.publish(event)
    """

    def __init__(self, log_file: Path) -> None:
        self._file = log_file.expanduser()
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._file

    async def publish(self, event: WatcherEvent) -> None:
        line = json.dumps(event.to_dict(), default=str) + "\n"
        async with self._lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError as exc:
                raise SinkError(
                    f"Cannot append event to {self._file}: {exc}", watcher_id=event.watcher_id
                ) from exc
        log.debug("event_written", watcher_id=event.watcher_id, path=str(self._file))

    def _append(self, line: str) -> None:
        self._file.parent.mkdir(parents=True, exist_ok=True)
        with self._file.open("a", encoding="utf-8") as f:
            f.write(line)


# ---------------------------------------------------------------------------
# QueueEventSink
# ---------------------------------------------------------------------------


class QueueEventSink(EventSink):
    """Hands events to an in-process consumer through a bounded queue.

    ``publish`` never waits: a full queue is a delivery failure, reported as
    ``SinkError`` so that a slow consumer cannot stall any watcher loop.

    Usage::

        sink = QueueEventSink(maxsize=1000)
        ...
        event = await sink.get()
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[WatcherEvent] = asyncio.Queue(maxsize=maxsize)

    async def publish(self, event: WatcherEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as exc:
            raise SinkError(
                f"Event queue full ({self._queue.maxsize} pending)", watcher_id=event.watcher_id
            ) from exc

    async def get(self) -> WatcherEvent:
        return await self._queue.get()

    def get_nowait(self) -> WatcherEvent:
        return self._queue.get_nowait()

    def qsize(self) -> int:
        return self._queue.qsize()

    def drain(self) -> list[WatcherEvent]:
        """Remove and return every pending event."""
        events: list[WatcherEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events


# ---------------------------------------------------------------------------
# FanoutEventSink
# ---------------------------------------------------------------------------


class FanoutEventSink(EventSink):
    """Publishes each event to several sinks in parallel.

    Every sink is attempted; if any of them fails, one ``SinkError``
    summarising the failures is raised after all have finished.

    Usage::

        sink = FanoutEventSink([
            LogEventSink(Path("~/.vigil/events.ndjson")),
            QueueEventSink(),
        ])
    """

    def __init__(self, sinks: list[EventSink]) -> None:
        self._sinks = sinks

    async def publish(self, event: WatcherEvent) -> None:
        results = await asyncio.gather(
            *(s.publish(event) for s in self._sinks),
            return_exceptions=True,
        )
        failures = [
            f"{type(sink).__name__}: {result}"
            for sink, result in zip(self._sinks, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            raise SinkError(
                f"{len(failures)} of {len(self._sinks)} sinks failed: " + "; ".join(failures),
                watcher_id=event.watcher_id,
            )
