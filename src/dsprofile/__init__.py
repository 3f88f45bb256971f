"""dsprofile: Event-based profiling with multi-dimensional time breakdowns.

Provides:
- Recorder: Start/Finish event store with lazily evaluated dimensions
- correlate: Matches nested Start/Finish pairs into execution records
- aggregate / aggregate_along_dims: Self and descendant time per dimension value
- Reporter: Fixed-width report tables with footnotes for oversized values
- Profiler: Session lifecycle (start, stop, report, interactive, trace)
- time_computation: Repeated-run timing statistics with warmup and discard

Usage:
    from dsprofile import Profiler

    profiler = Profiler()
    rec = profiler.recorder

    profiler.session_start()
    with rec.span(lambda: {"event": "parse", "file": path}):
        tree = parse(path)
    report = profiler.session_stop()
    report(["event"])
    report(["event", "file"])
"""

from dsprofile._aggregate import (
    Bucket,
    Grouping,
    aggregate,
    aggregate_along_dims,
)
from dsprofile._correlate import (
    CorrelationError,
    MismatchedNestingError,
    UnmatchedFinishError,
    UnterminatedSessionError,
    correlate,
)
from dsprofile._events import Event, EventKind, Recorder
from dsprofile._profiler import Profiler, parse_dimension_option
from dsprofile._report import (
    LoguruSink,
    OutputSink,
    ReportConfig,
    ReportData,
    Reporter,
    StreamSink,
    nano_to_ms,
    percent,
)
from dsprofile._timing import TimingStats, time_computation
from dsprofile._values import (
    Record,
    check_for,
    derived_dim_value,
    intrinsic_dim_value,
    is_event_type,
    standard_dim_value,
    subject_type,
    value_to_string,
)

__all__ = [
    "Bucket",
    "CorrelationError",
    "Event",
    "EventKind",
    "Grouping",
    "LoguruSink",
    "MismatchedNestingError",
    "OutputSink",
    "Profiler",
    "Record",
    "Recorder",
    "ReportConfig",
    "ReportData",
    "Reporter",
    "StreamSink",
    "TimingStats",
    "UnmatchedFinishError",
    "UnterminatedSessionError",
    "aggregate",
    "aggregate_along_dims",
    "check_for",
    "correlate",
    "derived_dim_value",
    "intrinsic_dim_value",
    "is_event_type",
    "nano_to_ms",
    "parse_dimension_option",
    "percent",
    "standard_dim_value",
    "subject_type",
    "time_computation",
    "value_to_string",
]

__version__ = "0.1.0"
