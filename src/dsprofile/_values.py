"""Execution records and dimension value lookup.

Aggregation asks for the value of a record at a named dimension through a
``DimValueFn``. The default looks the name up in the record's own dimensions
(intrinsic dimensions). Derived dimensions are computed from intrinsic ones by
chaining derivations in front of that default.

Lookups never raise: a missing dimension yields a descriptive placeholder
string that is aggregated and reported like any other value.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from beartype import beartype

from dsprofile._events import EMPTY_DIMENSIONS, Dimension, Dimensions, Value


@dataclass(frozen=True, eq=False)
class Record:
    """Execution of one matched Start/Finish pair.

    Attributes:
        stime: Self time in nanoseconds, excluding descendants and amortised
            overhead (MUST be >= 0)
        dimensions: Finish event dimensions overridden by the Start event's
        dir_descs: Records nested directly inside this one
        all_descs: All records nested inside this one, at any depth

    Records compare and hash by identity, so two executions with the same
    timing and dimensions remain distinct.
    """

    stime: int
    dimensions: Dimensions = field(default_factory=lambda: EMPTY_DIMENSIONS)
    dir_descs: tuple["Record", ...] = ()
    all_descs: tuple["Record", ...] = ()

    def __post_init__(self) -> None:
        assert self.stime >= 0, f"Record self time must be non-negative: {self.stime}"

    def __repr__(self) -> str:
        return f"Record(stime={self.stime}, dimensions={dict(self.dimensions)!r})"


DimValueFn = Callable[[Record, Dimension], Value]
Derivation = Callable[[Record], Value]


def intrinsic_dim_value(record: Record, dim: Dimension) -> Value:
    """Return the record's own value for ``dim`` or a placeholder string."""
    if dim in record.dimensions:
        return record.dimensions[dim]
    return f'unknown dimension "{dim}"'


def is_event_type(record: Record, event_type: str) -> bool:
    """Return True if the record's ``event`` dimension equals ``event_type``."""
    return "event" in record.dimensions and record.dimensions["event"] == event_type


def check_for(
    record: Record,
    dim: Dimension,
    event_type: str,
    needed: Dimension,
    f: Callable[[Value], Value],
) -> Value:
    """Derive ``dim`` from the intrinsic dimension ``needed``.

    If the record has an ``event`` dimension matching ``event_type`` (any
    event when ``event_type`` is empty) and carries ``needed``, return
    ``f`` applied to its value. Otherwise return a placeholder explaining
    why ``dim`` cannot be derived.
    """
    dimensions = record.dimensions
    if "event" not in dimensions:
        return f'record does not have "event" dimension, so "{dim}" cannot be derived from "{needed}"'
    if event_type and dimensions["event"] != event_type:
        return f'record is not of event "{event_type}", so "{dim}" cannot be derived from "{needed}"'
    if needed not in dimensions:
        return (
            f'"{needed}" dimension not available in "{event_type}" event, '
            f'so "{dim}" cannot be derived'
        )
    return f(dimensions[needed])


def subject_type(record: Record) -> Value:
    """Name of the Python type of the record's ``subject`` dimension."""
    return check_for(record, "type", "", "subject", lambda subject: type(subject).__name__)


@beartype
def derived_dim_value(
    derivations: Mapping[Dimension, Derivation],
    fallback: DimValueFn = intrinsic_dim_value,
) -> DimValueFn:
    """Build a lookup that computes the named derived dimensions.

    Args:
        derivations: Derived dimension name to a function of the record
        fallback: Lookup used for every other name (default: intrinsic lookup)

    Returns:
        A DimValueFn suitable for aggregation and reporting.

    Example:
        lookup = derived_dim_value({"type": subject_type})
        profiler = Profiler(dim_value=lookup)
    """
    table = dict(derivations)

    def dim_value(record: Record, dim: Dimension) -> Value:
        derive = table.get(dim)
        if derive is None:
            return fallback(record, dim)
        return derive(record)

    return dim_value


standard_dim_value: DimValueFn = derived_dim_value({"type": subject_type})


def value_to_string(value: Any) -> str:
    """Default rendering of a dimension value."""
    if value is None:
        return "null"
    return str(value)
