"""Repeated-run timing of a computation.

Independent of event recording: the computation is timed as a whole with the
wall clock. Warmup runs are not measured, and the largest and smallest samples
are discarded before the statistics are computed.

Memory tracking via psutil is optional (off by default) since RSS sampling
costs far more than the clock reads.
"""

import statistics
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import psutil
from beartype import beartype

from dsprofile._report import OutputSink, StreamSink


@dataclass
class TimingStats:
    """Summary of the retained timing samples (all times in nanoseconds).

    Attributes:
        samples: Retained samples in ascending order
        n: Number of measured runs
        warmup: Number of unmeasured warmup runs
        discard: Samples dropped at each end
        memory_delta: Change in process RSS over the measured runs (GB)
        peak_memory: Process RSS after the measured runs (GB)
    """

    samples: list[int]
    n: int
    warmup: int
    discard: int
    memory_delta: float = 0.0
    peak_memory: float = 0.0
    mean: float = field(init=False)
    stddev: float = field(init=False)

    def __post_init__(self) -> None:
        assert self.samples, "TimingStats needs at least one sample"
        self.mean = statistics.fmean(self.samples)
        self.stddev = statistics.stdev(self.samples) if len(self.samples) > 1 else 0.0

    @property
    def minimum(self) -> int:
        return self.samples[0]

    @property
    def maximum(self) -> int:
        return self.samples[-1]

    @property
    def coeff_var(self) -> float:
        return self.stddev / self.mean if self.mean > 0 else 0.0


@beartype
def discard_samples(samples: list[int], discard: int) -> list[int]:
    """Sort ``samples`` and drop the ``discard`` largest and smallest.

    Returns an empty list if there are fewer than ``2 * discard`` samples.
    """
    assert discard >= 0, f"Discard count must be non-negative: {discard}"
    if len(samples) < 2 * discard:
        return []
    ordered = sorted(samples)
    return ordered[discard : len(ordered) - discard]


def _rss_gb() -> float:
    return psutil.Process().memory_info().rss / 1024**3


@beartype
def time_computation(
    computation: Callable[[], Any],
    warmup: int = 10,
    n: int = 24,
    discard: int = 2,
    sink: OutputSink | None = None,
    track_memory: bool = False,
) -> TimingStats | None:
    """Run ``computation`` repeatedly and report timing statistics.

    Args:
        computation: Zero-argument callable to time
        warmup: Runs before measuring (MUST be >= 0)
        n: Measured runs (MUST be >= 0)
        discard: Largest and smallest samples to drop (MUST be >= 0)
        sink: Output destination (default: stderr)
        track_memory: Also report process memory via psutil

    Returns:
        Statistics for the retained samples, or None if none remain.
    """
    assert warmup >= 0, f"Warmup count must be non-negative: {warmup}"
    assert n >= 0, f"Sample count must be non-negative: {n}"
    out = sink if sink is not None else StreamSink()

    for _ in range(warmup):
        computation()

    start_memory = _rss_gb() if track_memory else 0.0
    samples: list[int] = []
    for _ in range(n):
        started = time.perf_counter_ns()
        computation()
        samples.append(time.perf_counter_ns() - started)

    timings = discard_samples(samples, discard)
    if not timings:
        out.outputln("No samples to print")
        return None

    stats = TimingStats(timings, n, warmup, discard)
    if track_memory:
        stats.peak_memory = _rss_gb()
        stats.memory_delta = stats.peak_memory - start_memory

    out.outputln(str(timings))
    out.outputln(f"Num samples     = {n}")
    out.outputln(f"Warmup samples  = {warmup}")
    out.outputln(f"Discard samples = {discard}")
    out.outputln(f"Include samples = {len(timings)}")
    out.outputln(f"Min             = {stats.minimum}")
    out.outputln(f"Max             = {stats.maximum}")
    out.outputln(f"Mean            = {stats.mean:.2f}")
    out.outputln(f"Std dev         = {stats.stddev:.2f}")
    out.outputln(f"Coeff var       = {stats.coeff_var:.2f}")
    if track_memory:
        sign = "+" if stats.memory_delta >= 0 else ""
        out.outputln(f"Peak memory     = {stats.peak_memory:.2f}GB (Δ={sign}{stats.memory_delta:.2f}GB)")
    return stats
