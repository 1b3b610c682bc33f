"""Rank read strategies and decide winners.

One verdict per (size class, ordering).  Strategies are ranked by
ascending mean duration; groups without a mean (every trial failed)
rank last.  Improvement is measured against the eager baseline::

    improvement = (baseline_mean - candidate_mean) / baseline_mean

The fastest strategy is the winner only when it beats the next-best by
more than the noise threshold; otherwise the verdict is a tie.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable

from readbench.bench.config import DEFAULT_NOISE_THRESHOLD
from readbench.bench.results import OrderingKind, ReadStrategy, SizeClass
from readbench.bench.stats import SummaryStat

log = logging.getLogger("readbench")

TIE = "tie"


# ---------------------------------------------------------------------------
# Verdict structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedStrategy:
    """One strategy's position within a verdict."""

    strategy: ReadStrategy
    mean_ns: float | None
    stddev_ns: float | None
    relative_improvement_pct: float | None  # vs baseline; None if undefined
    sample_count: int
    failure_count: int
    timeout_count: int = 0

    @property
    def failure_rate(self) -> float:
        if self.sample_count == 0:
            return 0.0
        return self.failure_count / self.sample_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "mean_ns": round(self.mean_ns, 3) if self.mean_ns is not None else None,
            "stddev_ns": round(self.stddev_ns, 3) if self.stddev_ns is not None else None,
            "relative_improvement_pct": (
                round(self.relative_improvement_pct, 3)
                if self.relative_improvement_pct is not None
                else None
            ),
            "sample_count": self.sample_count,
            "failure_count": self.failure_count,
            "timeout_count": self.timeout_count,
        }


@dataclass(frozen=True)
class ComparisonVerdict:
    """Ranking and winner for one (size class, ordering)."""

    size_class: SizeClass
    ordering: OrderingKind
    ranked: tuple[RankedStrategy, ...]
    winner: ReadStrategy | str | None  # a strategy, TIE, or None if undecidable
    baseline: ReadStrategy = ReadStrategy.EAGER
    noise_threshold: float = DEFAULT_NOISE_THRESHOLD
    margin_pct: float | None = None  # best vs next-best
    result_mismatch: bool = False

    @property
    def is_tie(self) -> bool:
        return self.winner == TIE

    @property
    def winner_label(self) -> str:
        if self.winner is None:
            return "n/a"
        if isinstance(self.winner, ReadStrategy):
            return self.winner.value
        return self.winner

    @property
    def has_failures(self) -> bool:
        return any(r.failure_count for r in self.ranked)

    def to_dict(self) -> dict[str, Any]:
        return {
            "size_class": self.size_class.value,
            "ordering": self.ordering.value,
            "ranked": [r.to_dict() for r in self.ranked],
            "winner": self.winner_label if self.winner is not None else None,
            "baseline": self.baseline.value,
            "noise_threshold": self.noise_threshold,
            "margin_pct": round(self.margin_pct, 3) if self.margin_pct is not None else None,
            "result_mismatch": self.result_mismatch,
        }


# ---------------------------------------------------------------------------
# Comparison logic
# ---------------------------------------------------------------------------


def _rank_key(stat: SummaryStat) -> tuple[bool, float, int]:
    mean = stat.mean_ns
    return (mean is None, mean if mean is not None else 0.0, list(ReadStrategy).index(stat.strategy))


def _improvement_pct(baseline_mean: float | None, mean: float | None) -> float | None:
    if baseline_mean is None or mean is None or baseline_mean <= 0:
        return None
    return (baseline_mean - mean) / baseline_mean * 100


def _decide_winner(
    ranked: list[SummaryStat],
    noise_threshold: float,
) -> tuple[ReadStrategy | str | None, float | None]:
    measured = [s for s in ranked if s.mean_ns is not None]
    if len(measured) < 2:
        return None, None

    best, runner_up = measured[0], measured[1]
    assert best.mean_ns is not None and runner_up.mean_ns is not None
    if runner_up.mean_ns <= 0:
        return TIE, 0.0

    margin = (runner_up.mean_ns - best.mean_ns) / runner_up.mean_ns
    if margin > noise_threshold:
        return best.strategy, margin * 100
    return TIE, margin * 100


def compare(
    stats: Iterable[SummaryStat],
    *,
    noise_threshold: float = DEFAULT_NOISE_THRESHOLD,
    baseline: ReadStrategy = ReadStrategy.EAGER,
) -> list[ComparisonVerdict]:
    """Produce one verdict per (size class, ordering).

    Identical input always gives identical output: ranking ties on the
    mean fall back to strategy declaration order.

    Args:
        stats: Summary statistics, typically from ``summarize``.
        noise_threshold: Minimum fractional lead over the next-best
            strategy for a winner to be declared.
        baseline: Strategy that relative improvements are measured against.
    """
    groups: dict[tuple[SizeClass, OrderingKind], list[SummaryStat]] = {}
    for stat in stats:
        groups.setdefault((stat.size_class, stat.ordering), []).append(stat)

    size_order = list(SizeClass)
    ordering_order = list(OrderingKind)

    verdicts: list[ComparisonVerdict] = []
    for size_class, ordering in sorted(
        groups,
        key=lambda k: (size_order.index(k[0]), ordering_order.index(k[1])),
    ):
        group = sorted(groups[(size_class, ordering)], key=_rank_key)

        baseline_stat = next((s for s in group if s.strategy is baseline), None)
        baseline_mean = baseline_stat.mean_ns if baseline_stat else None
        if baseline_mean is None:
            log.debug(
                "No baseline mean for %s/%s; improvements undefined",
                size_class.value,
                ordering.value,
            )

        ranked = tuple(
            RankedStrategy(
                strategy=s.strategy,
                mean_ns=s.mean_ns,
                stddev_ns=s.stddev_ns,
                relative_improvement_pct=_improvement_pct(baseline_mean, s.mean_ns),
                sample_count=s.sample_count,
                failure_count=s.failure_count,
                timeout_count=s.timeout_count,
            )
            for s in group
        )

        winner, margin = _decide_winner(group, noise_threshold)
        all_results = {r for s in group for r in s.results}

        verdicts.append(
            ComparisonVerdict(
                size_class=size_class,
                ordering=ordering,
                ranked=ranked,
                winner=winner,
                baseline=baseline,
                noise_threshold=noise_threshold,
                margin_pct=margin,
                result_mismatch=len(all_results) > 1,
            )
        )

    return verdicts


def win_counts(verdicts: Iterable[ComparisonVerdict]) -> dict[str, int]:
    """Count wins per strategy (and ties) across verdicts."""
    counts: Counter[str] = Counter()
    for v in verdicts:
        if v.winner is not None:
            counts[v.winner_label] += 1
    return dict(counts)
