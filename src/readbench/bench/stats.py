"""Statistics over trial samples.

``summarize`` groups measured (non-warmup) samples by
(strategy, ordering, size class) and reduces each group to a
``SummaryStat``.  Failed trials are counted but never enter the mean or
standard deviation; a group with no successes keeps ``mean_ns = None``
so it shows up as a gap in reports instead of disappearing.

Mean and sample standard deviation only.  Distributions are assumed to
be noisy (minutes of jitter on large inputs), so outliers are flagged
with the IQR rule for the reader to judge, never dropped.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Sequence

from readbench.bench.results import (
    ErrorKind,
    OrderingKind,
    ReadStrategy,
    SizeClass,
    TrialSample,
)


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------


@dataclass
class DescriptiveStats:
    """Summary statistics for a sample."""

    n: int
    mean: float
    median: float
    stdev: float
    min: float
    max: float
    q1: float  # 25th percentile
    q3: float  # 75th percentile
    cv: float  # coefficient of variation (stdev/mean)

    def to_dict(self) -> dict[str, float | int]:
        """Serialize to a dict with rounded values."""
        return {
            "n": self.n,
            "mean": round(self.mean, 3),
            "median": round(self.median, 3),
            "stdev": round(self.stdev, 3),
            "min": round(self.min, 3),
            "max": round(self.max, 3),
            "q1": round(self.q1, 3),
            "q3": round(self.q3, 3),
            "cv": round(self.cv, 6),
        }


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Compute descriptive statistics for a sample.

    Returns:
        DescriptiveStats with all fields populated.  Empty input gives
        NaN everywhere; a single value gives stdev and CV of 0.0.
    """
    if not values:
        nan = float("nan")
        return DescriptiveStats(n=0, mean=nan, median=nan, stdev=nan, min=nan, max=nan,
                                q1=nan, q3=nan, cv=nan)

    sorted_v = sorted(values)
    n = len(sorted_v)
    mean = statistics.mean(sorted_v)

    if n >= 2:
        stdev = statistics.stdev(sorted_v)
        cv = stdev / mean if mean != 0 else float("inf")
    else:
        stdev = 0.0
        cv = 0.0

    return DescriptiveStats(
        n=n,
        mean=mean,
        median=statistics.median(sorted_v),
        stdev=stdev,
        min=sorted_v[0],
        max=sorted_v[-1],
        q1=_percentile(sorted_v, 0.25),
        q3=_percentile(sorted_v, 0.75),
        cv=cv,
    )


def _percentile(sorted_values: list[float], p: float) -> float:
    """Compute the p-th percentile using linear interpolation.

    Assumes sorted_values is already sorted in ascending order.
    """
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


def detect_outliers(
    values: Sequence[float],
    *,
    factor: float = 1.5,
) -> list[bool]:
    """Detect outliers using the IQR method.

    A value is an outlier if it falls below Q1 - factor*IQR or
    above Q3 + factor*IQR.  Fewer than 4 values never have outliers.
    """
    if len(values) < 4:
        return [False] * len(values)

    sorted_v = sorted(values)
    q1 = _percentile(sorted_v, 0.25)
    q3 = _percentile(sorted_v, 0.75)
    iqr = q3 - q1

    lower = q1 - factor * iqr
    upper = q3 + factor * iqr

    return [v < lower or v > upper for v in values]


# ---------------------------------------------------------------------------
# Per-group summary
# ---------------------------------------------------------------------------

StatKey = tuple[ReadStrategy, OrderingKind, SizeClass]


@dataclass
class SummaryStat:
    """Aggregated timings for one (strategy, ordering, size class)."""

    strategy: ReadStrategy
    ordering: OrderingKind
    size_class: SizeClass
    sample_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    durations: DescriptiveStats | None = None  # successful trials only
    outlier_count: int = 0
    results: tuple[int, ...] = field(default_factory=tuple)  # distinct scalars seen

    @property
    def key(self) -> StatKey:
        return (self.strategy, self.ordering, self.size_class)

    @property
    def mean_ns(self) -> float | None:
        """Mean duration of successful trials; None marks a reporting gap."""
        return self.durations.mean if self.durations else None

    @property
    def stddev_ns(self) -> float | None:
        return self.durations.stdev if self.durations else None

    @property
    def has_gap(self) -> bool:
        return self.durations is None

    @property
    def failure_rate(self) -> float:
        if self.sample_count == 0:
            return 0.0
        return self.failure_count / self.sample_count

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "strategy": self.strategy.value,
            "ordering": self.ordering.value,
            "size_class": self.size_class.value,
            "sample_count": self.sample_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "timeout_count": self.timeout_count,
            "mean_ns": round(self.mean_ns, 3) if self.mean_ns is not None else None,
            "stddev_ns": round(self.stddev_ns, 3) if self.stddev_ns is not None else None,
            "outlier_count": self.outlier_count,
            "results": list(self.results),
        }
        if self.durations:
            d["durations"] = self.durations.to_dict()
        return d


def _enum_index(member: Any) -> int:
    return list(type(member)).index(member)


def stat_sort_key(key: StatKey) -> tuple[int, int, int]:
    """Deterministic report order: size class, then ordering, then strategy."""
    strategy, ordering, size_class = key
    return (_enum_index(size_class), _enum_index(ordering), _enum_index(strategy))


def summarize(samples: Iterable[TrialSample]) -> list[SummaryStat]:
    """Reduce trial samples into one SummaryStat per group.

    Warm-up samples are ignored.  ``sample_count`` always equals
    ``success_count + failure_count``.
    """
    grouped: dict[StatKey, list[TrialSample]] = {}
    for sample in samples:
        if sample.warmup:
            continue
        grouped.setdefault(sample.key, []).append(sample)

    summaries: list[SummaryStat] = []
    for key in sorted(grouped, key=stat_sort_key):
        group = grouped[key]
        strategy, ordering, size_class = key
        succeeded = [s for s in group if s.succeeded]
        failed = [s for s in group if not s.succeeded]

        stat = SummaryStat(
            strategy=strategy,
            ordering=ordering,
            size_class=size_class,
            sample_count=len(group),
            success_count=len(succeeded),
            failure_count=len(failed),
            timeout_count=sum(1 for s in failed if s.error_kind is ErrorKind.TIMEOUT),
        )
        if succeeded:
            durations = [float(s.duration_ns) for s in succeeded]
            stat.durations = describe(durations)
            stat.outlier_count = sum(detect_outliers(durations))
            stat.results = tuple(sorted({s.result for s in succeeded if s.result is not None}))
        summaries.append(stat)

    return summaries
