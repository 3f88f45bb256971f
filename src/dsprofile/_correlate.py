"""Correlation of Start/Finish events into execution records.

Events must nest like parentheses: every Finish event closes the most recently
opened Start event with the same id. Anything else is an instrumentation bug
and aborts correlation.
"""

from collections.abc import Sequence
from types import MappingProxyType

from beartype import beartype
from loguru import logger

from dsprofile._events import Event, EventKind
from dsprofile._values import Record


class CorrelationError(RuntimeError):
    """Event sequence is not well nested."""


class UnmatchedFinishError(CorrelationError):
    pass


class MismatchedNestingError(CorrelationError):
    pass


class UnterminatedSessionError(CorrelationError):
    pass


def _describe(event: Event) -> str:
    return f"{event.kind} {dict(event.dimensions)}"


@beartype
def overhead_per_record(overhead: int, nevents: int) -> int:
    """Share of the recording overhead charged to each record."""
    assert overhead >= 0, f"Overhead must be non-negative: {overhead}"
    if nevents == 0:
        return 0
    return overhead // nevents // 2


@beartype
def correlate(events: Sequence[Event], overhead: int = 0) -> list[Record]:
    """Match Start/Finish events and build execution records.

    Args:
        events: Events in the order they were recorded (time order)
        overhead: Total nanoseconds spent generating the events; amortised
            equally across all records

    Returns:
        Every record created, nested ones included. Descendants precede the
        record that contains them.

    Raises:
        UnmatchedFinishError: Finish event with no open Start event
        MismatchedNestingError: Finish event that does not close the most
            recent open Start event
        UnterminatedSessionError: Start events still open at the end
    """
    share = overhead_per_record(overhead, len(events))

    opens: list[Event] = []
    # One frame per open Start, plus a base frame that collects the roots.
    dir_descs_stack: list[list[Record]] = [[]]
    all_descs_stack: list[list[Record]] = [[]]

    for event in events:
        if event.kind is EventKind.START:
            opens.append(event)
            dir_descs_stack.append([])
            all_descs_stack.append([])
            continue

        if not opens:
            raise UnmatchedFinishError(
                f"unmatched Finish: empty stack looking for Start event for {_describe(event)}"
            )
        start = opens.pop()
        if start.id != event.id:
            raise MismatchedNestingError(
                f"mismatched nesting: found {_describe(event)} (id {event.id}) "
                f"while looking for Finish of {_describe(start)} (id {start.id})"
            )

        dir_descs = tuple(dir_descs_stack.pop())
        all_descs = tuple(all_descs_stack.pop())
        dtime = sum(d.stime for d in all_descs)
        stime = max(event.time - start.time - dtime - share, 0)
        # Start dimensions win over Finish dimensions
        record = Record(
            stime, MappingProxyType({**event.dimensions, **start.dimensions}), dir_descs, all_descs
        )
        dir_descs_stack[-1].append(record)
        all_descs_stack[-1].extend(all_descs)
        all_descs_stack[-1].append(record)

    if opens:
        raise UnterminatedSessionError(
            f"unterminated session: {len(opens)} Start event(s) still open, "
            f"innermost {_describe(opens[-1])}"
        )

    records = all_descs_stack.pop()
    logger.debug(f"Correlated {len(events)} events into {len(records)} records")
    return records
