"""Rendering of profile reports.

A report is a session header followed by one table per grouping, depth first,
and then the footnotes collected while rendering the tables. Values whose
rendering is too wide for a table row (or spans lines) are replaced by a
footnote number; the same value object always gets the same number within one
report.
"""

import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol, TextIO, runtime_checkable

from beartype import beartype
from loguru import logger

from dsprofile._aggregate import Bucket, Grouping, aggregate_along_dims
from dsprofile._events import Dimension, Value
from dsprofile._values import DimValueFn, Record, intrinsic_dim_value, value_to_string


@runtime_checkable
class OutputSink(Protocol):
    """Destination of report text."""

    def output(self, text: str) -> None: ...

    def outputln(self, text: str = "") -> None: ...


class StreamSink:
    """Write report text to a stream.

    Args:
        stream: Target stream; None means whatever ``sys.stderr`` is at write time
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def output(self, text: str) -> None:
        self.stream.write(text)

    def outputln(self, text: str = "") -> None:
        self.stream.write(text + "\n")


class LoguruSink:
    """Send report text to loguru, one log message per completed line.

    Text passed to output() is buffered until the next outputln().
    """

    @beartype
    def __init__(self, level: str = "INFO") -> None:
        self.level = level
        self._pending: list[str] = []

    def output(self, text: str) -> None:
        self._pending.append(text)

    def outputln(self, text: str = "") -> None:
        self._pending.append(text)
        line = "".join(self._pending)
        self._pending.clear()
        for part in line.split("\n"):
            logger.log(self.level, part)


def percent(v: int, total: int) -> str:
    """Format ``v`` as a percentage of ``total`` with one decimal place."""
    if total == 0:
        return "100"
    # Half-up rounding of the shortest decimal form, so 6.25 shows as 6.3
    share = Decimal(repr(v * 100.0 / total)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{share:f}"


def nano_to_ms(nano: int) -> int:
    """Convert nanoseconds to whole milliseconds (truncating)."""
    return nano // 1_000_000


@dataclass
class ReportConfig:
    """Report layout options.

    Attributes:
        include_timings: Show the time columns, not just counts
        print_tables: Render the header, tables and footnotes. Turn off when
            hooks produce all of the output.
        footnote_width: Widest value shown inline when timings are included
        footnote_width_no_timings: Widest value shown inline without timings
    """

    include_timings: bool = True
    print_tables: bool = True
    footnote_width: int = 25
    footnote_width_no_timings: int = 62


@dataclass
class ReportData:
    """Everything a report is built from, handed to the report hooks."""

    total_time: int
    profiled_time: int
    records: Sequence[Record]
    grouping: Grouping


ReportHook = Callable[[Sequence[Dimension], ReportData], None]


class Footnotes:
    """Footnote texts for one report, numbered from 1 and keyed by value identity."""

    def __init__(self) -> None:
        self.texts: list[str] = []
        self._numbers: dict[int, int] = {}
        # Keep the values alive so their ids are not reused during the report
        self._values: list[Any] = []

    def add(self, value: Value, text: str) -> int:
        number = self._numbers.get(id(value))
        if number is None:
            self.texts.append(text)
            self._values.append(value)
            number = len(self.texts)
            self._numbers[id(value)] = number
        return number

    def __len__(self) -> int:
        return len(self.texts)


class Reporter:
    """Render aggregated profile data as fixed-width tables.

    Args:
        config: Layout options (default: ReportConfig())
        sink: Output destination (default: StreamSink() on stderr)
        dim_value: Lookup of a record's value at a dimension
        value_to_string: Rendering of dimension values
        on_start: Called before the first table with the requested dimension
            names and the aggregated data
        on_finish: Called after the footnotes with the same arguments

    Example:
        reporter = Reporter(config=ReportConfig(include_timings=False))
        reporter.report(total_time, ["event", "name"], records)
    """

    @beartype
    def __init__(
        self,
        config: ReportConfig | None = None,
        sink: OutputSink | None = None,
        dim_value: DimValueFn = intrinsic_dim_value,
        value_to_string: Callable[[Any], str] = value_to_string,
        on_start: ReportHook | None = None,
        on_finish: ReportHook | None = None,
    ) -> None:
        self.config = config if config is not None else ReportConfig()
        self.sink: OutputSink = sink if sink is not None else StreamSink()
        self.dim_value = dim_value
        self.value_to_string = value_to_string
        self.on_start = on_start
        self.on_finish = on_finish
        self.print_tables = self.config.print_tables
        self._footnotes = Footnotes()
        self._profiled_time = 0
        self._nrecords = 0

    def output(self, text: str) -> None:
        self.sink.output(text)

    def outputln(self, text: str = "") -> None:
        self.sink.outputln(text)

    @beartype
    def report(
        self,
        total_time: int,
        dimension_names: Sequence[Dimension],
        records: Sequence[Record],
    ) -> ReportData | None:
        """Aggregate ``records`` along ``dimension_names`` and print the report.

        Args:
            total_time: Wall-clock duration of the session (ns)
            dimension_names: Dimensions to summarise along, outermost first
            records: Every record of the session

        Returns:
            The aggregated data, or None when no dimension names were given
            (nothing is printed in that case).
        """
        if not dimension_names:
            return None

        profiled_time = sum(r.stime for r in records)
        grouping = aggregate_along_dims(records, list(dimension_names), self.dim_value)
        data = ReportData(total_time, profiled_time, records, grouping)

        self._footnotes = Footnotes()
        self._profiled_time = profiled_time
        self._nrecords = len(records)
        self.print_tables = self.config.print_tables

        if self.on_start is not None:
            self.on_start(dimension_names, data)
        if self.print_tables:
            self._print_header(data)
            self._print_grouping(grouping)
            self._print_footnotes()
        if self.on_finish is not None:
            self.on_finish(dimension_names, data)
        return data

    def formatted_value(self, value: Value) -> str:
        """Render ``value`` for a table, footnoting it if it is too wide."""
        text = self.value_to_string(value)
        width = (
            self.config.footnote_width
            if self.config.include_timings
            else self.config.footnote_width_no_timings
        )
        if "\n" in text or len(text) > width:
            return f"[{self._footnotes.add(value, text)}]"
        return text

    def _print_header(self, data: ReportData) -> None:
        self.outputln()
        self.outputln(f"{nano_to_ms(data.total_time):6d} ms total time")
        self.outputln(
            f"{nano_to_ms(data.profiled_time):6d} ms profiled time "
            f"({percent(data.profiled_time, data.total_time)}%)"
        )
        self.outputln(f"{len(data.records):6d} profile records")
        self.outputln()

    def _print_grouping(self, grouping: Grouping, label: str = "") -> None:
        suffix = f" for {label}" if label else ""
        self.outputln(f"By {grouping.dimension}{suffix}:")
        self.outputln()
        self._print_table(grouping.buckets)
        for bucket in grouping.buckets:
            if bucket.breakdown is not None:
                value = self.formatted_value(bucket.value)
                self._print_grouping(bucket.breakdown, f"{label} and {value}" if label else value)

    def _print_table(self, buckets: list[Bucket]) -> None:
        profiled = self._profiled_time
        if self.config.include_timings:
            self.outputln(
                "".join(f"{h:>6}" for h in ("Total", "Total", "Self", "Self", "Desc", "Desc", "Count", "Count"))
            )
            self.outputln("".join(f"{h:>6}" for h in ("ms", "  %", "ms", "%", "ms", "%", "", "%")))
            for bucket in buckets:
                self.outputln(
                    f"{nano_to_ms(bucket.time):6d}{percent(bucket.time, profiled):>6}"
                    f"{nano_to_ms(bucket.stime):6d}{percent(bucket.stime, profiled):>6}"
                    f"{nano_to_ms(bucket.dtime):6d}{percent(bucket.dtime, profiled):>6}"
                    f"{bucket.nrecords:6d}{percent(bucket.nrecords, self._nrecords):>6}"
                    f"  {self.formatted_value(bucket.value)}"
                )
        else:
            self.outputln(f"{'Count':>6}{'Count':>6}")
            self.outputln(f"{'':>6}{'%':>6}")
            for bucket in buckets:
                self.outputln(
                    f"{bucket.nrecords:6d}{percent(bucket.nrecords, self._nrecords):>6}"
                    f"  {self.formatted_value(bucket.value)}"
                )
        self.outputln()

    def _print_footnotes(self) -> None:
        # Multi-line values start on the line after their number
        for number, text in enumerate(self._footnotes.texts, start=1):
            separator = "\n" if "\n" in text else " "
            self.outputln(f"[{number}]{separator}{text}")
            self.outputln()
