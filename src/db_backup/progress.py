"""Progress delivery: channels, the client registry and per-run reporters.

Progress is observational.  Delivery is best-effort and never blocks or
fails a backup run: events for an unknown, closed, or full channel are
dropped.

Usage:
    from db_backup.models import Stage
    from db_backup.progress import START_PERCENT, ProgressRegistry, ProgressReporter

    registry = ProgressRegistry()
    channel = registry.subscribe("abc")

    reporter = ProgressReporter(registry, "abc")
    reporter.emit(Stage.START, START_PERCENT, "Starting backup")

    async for event in channel:
        print(event.to_message())
"""

import asyncio
import logging
import math
import threading
from typing import Protocol, runtime_checkable

from db_backup.models import ArtifactFiles, ProgressEvent, Stage

logger = logging.getLogger(__name__)

# Percent checkpoints per phase
START_PERCENT = 2
CONNECT_PERCENT = 5
CONNECTED_PERCENT = 10
SCHEMA_RANGE = (10, 45)
DATA_START_PERCENT = 46
DATA_RANGE = (46, 99)
DONE_PERCENT = 100


def schema_percent(tables_done: int, total_tables: int) -> int:
    """Percent after ``tables_done`` schema exports, rounded half up."""
    low, high = SCHEMA_RANGE
    fraction = tables_done / max(1, total_tables)
    return low + math.floor(fraction * (high - low) + 0.5)


def data_percent(
    tables_completed: int,
    rows_written: int,
    row_count: int,
    total_tables: int,
) -> int:
    """Percent within the data phase for the table currently being dumped.

    ``tables_completed`` counts tables finished before the current one.
    An empty table counts as fully written.
    """
    low, high = DATA_RANGE
    if row_count <= 0:
        within_table = 1.0
    else:
        within_table = min(1.0, rows_written / row_count)
    across = (tables_completed + within_table) / max(1, total_tables)
    return low + math.floor(min(1.0, across) * (high - low))


# ============================================================================
# Channels
# ============================================================================


@runtime_checkable
class ProgressChannel(Protocol):
    """Delivery endpoint for one observer.

    ``send`` must not block.  Returning ``False`` or raising means the
    event was dropped.
    """

    @property
    def is_open(self) -> bool:
        ...

    def send(self, event: ProgressEvent) -> bool:
        ...


_CLOSED = object()


class QueueChannel:
    """Bounded ``asyncio.Queue`` channel consumed with ``async for``.

    Events sent while the queue is full are dropped.  ``close()`` ends
    iteration once already-queued events are drained.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._open = True
        self.dropped = 0

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, event: ProgressEvent) -> bool:
        if not self._open:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        """Stop accepting events and wake any waiting consumer."""
        if not self._open:
            return
        self._open = False
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Make room for the sentinel; the oldest queued event is lost
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(_CLOSED)

    def drain(self) -> list[ProgressEvent]:
        """Return every queued event without waiting."""
        events: list[ProgressEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                # Keep the sentinel for any consumer still iterating
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events

    def __aiter__(self) -> "QueueChannel":
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item


# ============================================================================
# Registry
# ============================================================================


class ProgressRegistry:
    """Maps client ids to their live channel.

    At most one channel is bound per client id; registering again replaces
    the previous binding.  All mutation happens under a lock so transports
    may register and unregister from their own lifecycle callbacks while
    runs are emitting.
    """

    def __init__(self) -> None:
        self._channels: dict[str, ProgressChannel] = {}
        self._lock = threading.Lock()

    def register(self, client_id: str, channel: ProgressChannel) -> ProgressChannel | None:
        """Bind ``channel`` to ``client_id``.

        Returns:
            The channel that was replaced, if any.
        """
        with self._lock:
            previous = self._channels.get(client_id)
            self._channels[client_id] = channel
        if previous is not None and previous is not channel:
            logger.debug("Replaced progress channel for client %s", client_id)
        return previous

    def unregister(self, client_id: str, channel: ProgressChannel | None = None) -> None:
        """Remove the binding for ``client_id``; no-op if absent.

        When ``channel`` is given, the binding is only removed if it still
        points at that channel, so a stale disconnect cannot evict a newer
        registration.
        """
        with self._lock:
            current = self._channels.get(client_id)
            if current is None:
                return
            if channel is not None and current is not channel:
                return
            del self._channels[client_id]

    def get(self, client_id: str) -> ProgressChannel | None:
        with self._lock:
            return self._channels.get(client_id)

    def subscribe(self, client_id: str, maxsize: int = 256) -> QueueChannel:
        """Create, register and return a ``QueueChannel`` for ``client_id``."""
        channel = QueueChannel(maxsize=maxsize)
        self.register(client_id, channel)
        return channel

    def emit(self, client_id: str, event: ProgressEvent) -> bool:
        """Push ``event`` to the bound channel, if any.

        Never raises.

        Returns:
            ``True`` if the channel accepted the event.
        """
        channel = self.get(client_id)
        if channel is None:
            return False
        try:
            if not channel.is_open:
                return False
            return channel.send(event) is not False
        except Exception:
            logger.debug(
                "Dropped %s event for client %s", event.stage.value, client_id,
                exc_info=True,
            )
            return False

    def __contains__(self, client_id: object) -> bool:
        with self._lock:
            return client_id in self._channels

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)


# ============================================================================
# Per-run reporter
# ============================================================================


class ProgressReporter:
    """Emits the events of a single run for one client id.

    Percent is clamped to [0, 100] and never decreases.  Nothing is emitted
    after a terminal (``done`` or ``error``) event.
    """

    def __init__(self, registry: ProgressRegistry, client_id: str) -> None:
        self._registry = registry
        self._client_id = client_id
        self._last_percent = 0
        self._finished = False

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def last_percent(self) -> int:
        return self._last_percent

    @property
    def finished(self) -> bool:
        return self._finished

    def emit(
        self,
        stage: Stage,
        percent: int,
        message: str,
        files: ArtifactFiles | None = None,
    ) -> ProgressEvent | None:
        """Build and deliver one event.

        Returns:
            The emitted event, or ``None`` if the run already finished.
        """
        if self._finished:
            return None

        percent = max(self._last_percent, min(100, max(0, int(percent))))
        event = ProgressEvent(
            stage=stage,
            percent=percent,
            message=message,
            files=files if stage is Stage.DONE else None,
        )
        self._last_percent = percent
        if stage.is_terminal:
            self._finished = True

        self._registry.emit(self._client_id, event)
        return event

    def error(self, message: str) -> ProgressEvent | None:
        """Emit the terminal error event at the last reached percent."""
        return self.emit(Stage.ERROR, self._last_percent, message)
