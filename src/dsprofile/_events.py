"""Event recording.

A Recorder collects Start/Finish events emitted by instrumented code. Events
are only built while the recorder is profiling or logging; otherwise the
instrumentation calls return immediately without evaluating their dimensions.

Design by Contract:
- Event ids are unique per session (counter reset to 0 by reset())
- The sentinel id 0 is returned while recording is disabled
- Overhead is non-negative (monotonic clock)
"""

import threading
import time
from collections.abc import Callable, Generator, Iterable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeVar

from beartype import beartype
from loguru import logger

Dimension = str
Value = Any
Dimensions = Mapping[Dimension, Value]
DimPairs = Mapping[Dimension, Value] | Iterable[tuple[Dimension, Value]]
DimThunk = Callable[[], DimPairs]

T = TypeVar("T")

EMPTY_DIMENSIONS: Dimensions = MappingProxyType({})


class EventKind(Enum):
    START = "Start"
    FINISH = "Finish"

    def __str__(self) -> str:
        return self.value


def render_dimensions(dimensions: Dimensions) -> str:
    """Render non-event dimensions sorted by name as ``name=value`` pairs."""
    return " ".join(
        f"{name}={dimensions[name]!r}" for name in sorted(dimensions) if name != "event"
    )


@dataclass(frozen=True)
class Event:
    """A single Start or Finish occurrence.

    Attributes:
        id: Identifier shared by a Start event and its matching Finish event
        kind: EventKind.START or EventKind.FINISH
        dimensions: Read-only dimension map
        time: Monotonic timestamp in nanoseconds
    """

    id: int
    kind: EventKind
    dimensions: Dimensions = field(default_factory=lambda: EMPTY_DIMENSIONS)
    time: int = 0

    def __str__(self) -> str:
        # Canonical form: the `event` dimension first, then the rest sorted
        event_dimension = str(self.dimensions.get("event", ""))
        return f"{self.id:5d}: {str(self.kind):<6} {event_dimension:>10} {render_dimensions(self.dimensions)}"


def _log_event(event: Event) -> None:
    logger.info(str(event))


class Recorder:
    """Append-only store of profiling events for one session.

    Args:
        clock: Nanosecond clock used for timestamps and overhead (default: perf_counter_ns)
        event_sink: Receives each event while logging is on (default: loguru at INFO)

    Attributes:
        profiling: Store events in the buffer
        logging: Emit events to the event sink as they happen. Useful for
            computations that never finish, where a stored trace is never reported.
        overhead: Nanoseconds spent inside start()/finish() while enabled

    Example:
        recorder = Recorder()
        recorder.profiling = True
        with recorder.span(lambda: {"event": "parse", "file": path}):
            tree = parse(path)

    Id allocation and appends happen under a lock so ids stay unique across
    threads. Correlation still expects one well-nested thread of control.
    """

    @beartype
    def __init__(
        self,
        clock: Callable[[], int] = time.perf_counter_ns,
        event_sink: Callable[[Event], None] = _log_event,
    ) -> None:
        self.profiling: bool = False
        self.logging: bool = False
        self.overhead: int = 0
        self._clock = clock
        self._event_sink = event_sink
        self._events: list[Event] = []
        self._uid: int = 0
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.profiling or self.logging

    @property
    def events(self) -> tuple[Event, ...]:
        """Snapshot of the recorded events in append (time) order."""
        with self._lock:
            return tuple(self._events)

    def now(self) -> int:
        return self._clock()

    def reset(self) -> None:
        """Clear the event buffer, the id counter and the accumulated overhead."""
        with self._lock:
            self._events.clear()
            self._uid = 0
            self.overhead = 0

    def _emit(self, kind: EventKind, event_id: int | None, dims: DimThunk | None, entered: int) -> int:
        dimensions = MappingProxyType(dict(dims())) if dims is not None else EMPTY_DIMENSIONS
        with self._lock:
            if event_id is None:
                self._uid += 1
                event_id = self._uid
            event = Event(event_id, kind, dimensions, self._clock())
            if self.profiling:
                self._events.append(event)
        if self.logging:
            self._event_sink(event)
        elapsed = self._clock() - entered
        with self._lock:
            self.overhead += elapsed
        return event_id

    def start(self, dims: DimThunk | None = None) -> int:
        """Generate a Start event and return its id.

        Args:
            dims: Zero-argument callable returning the dimensions as a mapping
                or as (name, value) pairs. Only called while recording.

        Returns:
            The new event id, or 0 when recording is disabled.
        """
        entered = self._clock()
        if not self.enabled:
            return 0
        return self._emit(EventKind.START, None, dims, entered)

    def finish(self, event_id: int, dims: DimThunk | None = None) -> None:
        """Generate a Finish event matching the Start event ``event_id``.

        The id is not checked here; mismatches surface when the events are
        correlated.
        """
        entered = self._clock()
        if not self.enabled:
            return
        self._emit(EventKind.FINISH, event_id, dims, entered)

    @contextmanager
    def span(self, dims: DimThunk | None = None) -> Generator[int, None, None]:
        """Bracket a block with a Start event and its Finish event.

        The Finish event is emitted even if the block raises, so a failing
        computation cannot leave an open Start behind.

        Yields:
            The Start event id (0 when recording is disabled)
        """
        event_id = self.start(dims)
        try:
            yield event_id
        finally:
            self.finish(event_id)

    def wrap(self, dims: DimThunk | None, body: Callable[[], T]) -> T:
        """Run ``body`` inside a span and return its result."""
        with self.span(dims):
            return body()
