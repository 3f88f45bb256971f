"""Aggregation of execution records along dimensions.

Records are grouped into buckets by their value at a dimension. A bucket's
self time is the sum of its records' self times; its descendant time is the
self time of descendants that fall into other buckets, each descendant counted
at most once per bucket even when several of the bucket's records contain it.

Design by Contract:
- Every returned bucket has nrecords >= 1
- Buckets are sorted by decreasing total time; ties keep encounter order
- Bucket keys are tagged by type, so True, 1 and 1.0 never share a bucket
- Unhashable values share a bucket when they are equal and of the same type
"""

from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any

from beartype import beartype

from dsprofile._events import Dimension, Value
from dsprofile._values import DimValueFn, Record, intrinsic_dim_value

_UNHASHABLE = object()


@dataclass
class Bucket:
    """Aggregated data for one value of a dimension.

    Attributes:
        value: The dimension value shared by the bucket's records
        records: Records whose value at the dimension is ``value``
        nrecords: Number of such records
        stime: Sum of their self times (ns)
        dtime: Self time of distinct descendants in other buckets (ns)
        breakdown: Grouping of ``records`` by the next dimension, if any
    """

    value: Value
    records: list[Record] = field(default_factory=list)
    nrecords: int = 0
    stime: int = 0
    dtime: int = 0
    breakdown: "Grouping | None" = None
    charged: set[Record] = field(default_factory=set, repr=False)

    @property
    def time(self) -> int:
        """Total time apportioned to this value: self plus descendant time."""
        return self.stime + self.dtime


@dataclass
class Grouping:
    """One aggregated table.

    Attributes:
        dimension: Dimension the buckets are keyed on
        path: Values of the enclosing buckets, outermost first (empty at top level)
        buckets: Buckets in report order
    """

    dimension: Dimension
    path: tuple[Value, ...] = ()
    buckets: list[Bucket] = field(default_factory=list)


class _BucketKeys:
    """Assigns bucket keys to dimension values within one aggregation.

    Hashable values are keyed by type and value. Unhashable values of the
    same type share a key when they compare equal; they are matched by a
    linear search over the representatives seen so far.
    """

    def __init__(self) -> None:
        self._unhashable: list[Value] = []

    def key(self, value: Value) -> Hashable:
        try:
            hash(value)
        except TypeError:
            pass
        else:
            return (type(value), value)
        for index, seen in enumerate(self._unhashable):
            if type(seen) is type(value) and seen == value:
                return (_UNHASHABLE, index)
        self._unhashable.append(value)
        return (_UNHASHABLE, len(self._unhashable) - 1)


@beartype
def aggregate(
    records: Sequence[Record],
    dimension: Dimension,
    dim_value: DimValueFn = intrinsic_dim_value,
) -> list[Bucket]:
    """Aggregate records by their value at a single dimension.

    Args:
        records: Records to group (typically every record of a session)
        dimension: Dimension name to group by
        dim_value: Lookup of a record's value at a dimension

    Returns:
        Non-empty buckets, sorted by decreasing ``time``.
    """
    buckets: dict[Hashable, Bucket] = {}
    bucket_keys = _BucketKeys()
    # dim_value is called once per record; derived values may be fresh objects
    looked_up: dict[Record, tuple[Hashable, Value]] = {}

    def lookup(record: Record) -> tuple[Hashable, Value]:
        entry = looked_up.get(record)
        if entry is None:
            value = dim_value(record, dimension)
            entry = looked_up[record] = (bucket_keys.key(value), value)
        return entry

    def key_of(record: Record) -> Hashable:
        return lookup(record)[0]

    for record in records:
        key, value = lookup(record)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(value)
        bucket.records.append(record)
        bucket.nrecords += 1
        bucket.stime += record.stime

        # Descendants in the same bucket are already counted as self time
        for desc in record.all_descs:
            if key_of(desc) != key and desc not in bucket.charged:
                bucket.dtime += desc.stime
                bucket.charged.add(desc)

    # sorted() is stable, so equal times keep first-encounter order
    return sorted(buckets.values(), key=lambda b: b.time, reverse=True)


@beartype
def aggregate_along_dims(
    records: Sequence[Record],
    dimension_names: Sequence[Dimension],
    dim_value: DimValueFn = intrinsic_dim_value,
    path: tuple[Any, ...] = (),
) -> Grouping:
    """Aggregate by the first dimension and drill into the rest.

    Each bucket's records are aggregated by the next dimension and the result
    stored in ``Bucket.breakdown``, producing a tree as deep as the number of
    dimension names.

    Args:
        records: Records to group
        dimension_names: One or more dimension names, outermost first
        dim_value: Lookup of a record's value at a dimension
        path: Values of the enclosing buckets (used by the recursion)

    Returns:
        Grouping for the first dimension.
    """
    assert dimension_names, "At least one dimension name is required"
    dimension, rest = dimension_names[0], dimension_names[1:]
    grouping = Grouping(dimension, path, aggregate(records, dimension, dim_value))
    if rest:
        for bucket in grouping.buckets:
            bucket.breakdown = aggregate_along_dims(
                bucket.records, rest, dim_value, path + (bucket.value,)
            )
    return grouping
