"""Profiling sessions.

Profiler ties a Recorder to a Reporter: start a session, run instrumented
code, stop the session to correlate the recorded events once, then produce as
many reports as needed from the resulting records.

Usage:
    profiler = Profiler()
    profiler.session_start()
    result = run(profiler.recorder)
    report = profiler.session_stop()
    report(["event"])
    report(["event", "name"])
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import TypeVar

from beartype import beartype
from loguru import logger

from dsprofile._correlate import correlate
from dsprofile._events import Dimension, Event, Recorder
from dsprofile._report import ReportData, Reporter

T = TypeVar("T")

ReportFn = Callable[[Sequence[Dimension]], ReportData | None]

QUIT = ":q"
PROMPT_BANNER = "Profiler: enter a comma-separated list of dimension names, then enter (:q to exit)"


@beartype
def parse_dimension_option(value: str) -> list[Dimension]:
    """Split a comma-separated option value into dimension names.

    The empty string yields an empty list, never ``[""]``.
    """
    if not value:
        return []
    return value.split(",")


def _stdin_lines() -> Iterator[str]:
    while True:
        try:
            yield input()
        except EOFError:
            return


class Profiler:
    """Profile sessions over a Recorder, reported by a Reporter.

    Args:
        recorder: Event store shared with the instrumented code (default: new Recorder)
        reporter: Report renderer (default: Reporter() writing to stderr)

    Design by Contract:
        - session_stop() requires a well-nested event buffer (raises CorrelationError)
        - total session time >= 0 (monotonic clock)
    """

    @beartype
    def __init__(self, recorder: Recorder | None = None, reporter: Reporter | None = None) -> None:
        self.recorder = recorder if recorder is not None else Recorder()
        self.reporter = reporter if reporter is not None else Reporter()
        self.start_time: int = self.recorder.now()

    @beartype
    def session_start(self, logging: bool = False) -> None:
        """Turn recording on, clear earlier events and note the start time."""
        self.recorder.profiling = True
        self.recorder.logging = logging
        self.recorder.reset()
        self.start_time = self.recorder.now()
        logger.debug(f"Profiling session started (logging={logging})")

    @beartype
    def session_stop(self) -> ReportFn:
        """Turn recording off and correlate the recorded events.

        Returns:
            A function that prints a report for the dimension names it is
            given. It can be called any number of times; correlation is not
            repeated.
        """
        total_time = self.recorder.now() - self.start_time
        assert total_time >= 0, f"Session time cannot be negative: {total_time}ns"

        self.recorder.profiling = False
        self.recorder.logging = False

        records = correlate(self.recorder.events, self.recorder.overhead)
        logger.debug(f"Profiling session stopped: {total_time}ns, {len(records)} records")

        def report(dimension_names: Sequence[Dimension]) -> ReportData | None:
            return self.reporter.report(total_time, dimension_names, records)

        return report

    @beartype
    def stop_and_report(self, dimension_names: Sequence[Dimension]) -> ReportData | None:
        """Stop the session and print one report."""
        return self.session_stop()(dimension_names)

    def interactive(self, report: ReportFn, lines: Iterable[str] | None = None) -> None:
        """Prompt for dimension lists and print a report for each.

        Args:
            report: Function returned by session_stop()
            lines: Source of input lines (default: standard input). Reading
                stops at ``:q`` or when the source is exhausted.
        """
        self.reporter.outputln(PROMPT_BANNER)
        source = iter(lines) if lines is not None else _stdin_lines()
        while True:
            self.reporter.output("> ")
            line = next(source, None)
            if line is None or line.strip() == QUIT:
                break
            report([name.strip() for name in parse_dimension_option(line.strip())])

    def stop_interactive(self, lines: Iterable[str] | None = None) -> None:
        """Stop the session and report interactively."""
        self.interactive(self.session_stop(), lines)

    def profile(
        self,
        computation: Callable[[], T],
        dimension_names: Sequence[Dimension],
        logging: bool = False,
        lines: Iterable[str] | None = None,
    ) -> T:
        """Profile ``computation`` and report along ``dimension_names``.

        With no dimension names, report interactively instead. If the
        computation raises, recording is switched off and the exception
        propagates without a report.

        Returns:
            The computation's result.
        """
        self.session_start(logging)
        try:
            result = computation()
        except BaseException:
            self.recorder.profiling = False
            self.recorder.logging = False
            raise
        if dimension_names:
            self.stop_and_report(dimension_names)
        else:
            self.stop_interactive(lines)
        return result

    def trace(self, predicate: Callable[[Event], bool] | None = None) -> None:
        """Print the recorded events for which ``predicate`` holds (default: all)."""
        for event in self.recorder.events:
            if predicate is None or predicate(event):
                self.reporter.outputln(str(event))
