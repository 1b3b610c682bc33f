"""Terminal display formatting for benchmark results.

Produces aligned tables of verdicts per (size class, ordering), with
failure rates shown next to every mean.  Uses Unicode box-drawing
characters for visual structure.
"""

from __future__ import annotations

import math

from readbench.bench.compare import ComparisonVerdict, compare, win_counts
from readbench.bench.config import DEFAULT_NOISE_THRESHOLD
from readbench.bench.results import BenchMeta, TrialSample
from readbench.bench.stats import SummaryStat, summarize


# ---------------------------------------------------------------------------
# Formatting utilities
# ---------------------------------------------------------------------------


def _format_time(duration_ns: float | None, precision: int = 2) -> str:
    """Format a nanosecond duration with adaptive units."""
    if duration_ns is None or math.isnan(duration_ns):
        return "N/A"
    seconds = duration_ns / 1e9
    if seconds < 0.001:
        return f"{seconds * 1_000_000:.0f}µs"
    if seconds < 1:
        return f"{seconds * 1000:.{precision}f}ms"
    if seconds < 60:
        return f"{seconds:.{precision}f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m{secs:.0f}s"


def _format_pct(value: float | None, precision: int = 1) -> str:
    """Format a percentage with sign."""
    if value is None or math.isnan(value):
        return "N/A"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{precision}f}%"


def _format_failures(failures: int, total: int) -> str:
    if not failures:
        return ""
    return f"{failures}/{total} failed ({failures / total * 100:.0f}%)"


# ---------------------------------------------------------------------------
# Verdict tables
# ---------------------------------------------------------------------------


def format_verdict(verdict: ComparisonVerdict) -> str:
    """Format one verdict as a ranked table."""
    title = f"{verdict.size_class.value} / {verdict.ordering.value}"
    lines = [title, "─" * len(title)]

    header = (
        f"  {'#':>2s} {'Strategy':<18s} {'Mean':>10s} {'±':>10s} "
        f"{'vs ' + verdict.baseline.value:>12s}  Failures"
    )
    lines.append(header)

    for rank, r in enumerate(verdict.ranked, start=1):
        lines.append(
            f"  {rank:>2d} {r.strategy.value:<18s} {_format_time(r.mean_ns):>10s} "
            f"{_format_time(r.stddev_ns):>10s} "
            f"{_format_pct(r.relative_improvement_pct):>12s}  "
            f"{_format_failures(r.failure_count, r.sample_count)}"
        )

    if verdict.winner is None:
        outcome = "Winner: n/a (fewer than two strategies with timings)"
    elif verdict.is_tie:
        outcome = (
            f"Winner: tie (lead {_format_pct(verdict.margin_pct)} within "
            f"{verdict.noise_threshold * 100:.1f}% noise threshold)"
        )
    else:
        outcome = (
            f"Winner: {verdict.winner_label} (lead {_format_pct(verdict.margin_pct)} "
            f"over next-best)"
        )
    lines.append(f"  {outcome}")
    if verdict.result_mismatch:
        lines.append("  WARNING: strategies produced different pipeline results")
    return "\n".join(lines)


def format_verdicts(verdicts: list[ComparisonVerdict]) -> str:
    """Format every verdict plus an overall win count."""
    if not verdicts:
        return "No comparable results."

    blocks = [format_verdict(v) for v in verdicts]

    counts = win_counts(verdicts)
    if counts:
        summary = ", ".join(f"{name}: {n}" for name, n in sorted(counts.items()))
        blocks.append(f"Overall: {summary}")
    return "\n\n".join(blocks)


def _format_gaps(stats: list[SummaryStat]) -> str:
    gaps = [s for s in stats if s.has_gap]
    if not gaps:
        return ""
    lines = ["Reporting gaps (no successful trials)"]
    for s in gaps:
        lines.append(
            f"  {s.size_class.value:<8s} {s.ordering.value:<11s} {s.strategy.value:<18s} "
            f"{s.failure_count} failed, {s.timeout_count} timed out"
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Single benchmark display
# ---------------------------------------------------------------------------


def format_bench_show(
    meta: BenchMeta,
    samples: list[TrialSample],
    *,
    noise_threshold: float | None = None,
) -> str:
    """Format a complete benchmark run for display."""
    if noise_threshold is None:
        noise_threshold = float(meta.config.get("noise_threshold", DEFAULT_NOISE_THRESHOLD))

    lines: list[str] = []

    title = meta.name or meta.bench_id
    lines.append(title)
    lines.append("─" * len(title))
    if meta.description:
        lines.append(meta.description)
    lines.append("")

    for name, ds in meta.datasets.items():
        lines.append(f"Dataset '{name}' [{ds.size_class.value}]: {ds.location}")
    cfg = meta.config
    lines.append(
        f"Repetitions: {cfg.get('repetitions', '?')} measured + {cfg.get('warmup', 0)} warmup"
    )
    lines.append(f"Timing mode: {cfg.get('timing_mode', '?')}")
    lines.append(f"Trials: {meta.trials_total} total, {meta.trials_failed} failed")
    if meta.start_time and meta.end_time:
        lines.append(f"Time: {meta.start_time} → {meta.end_time}")
    lines.append("")

    stats = summarize(samples)
    lines.append(format_verdicts(compare(stats, noise_threshold=noise_threshold)))

    gaps = _format_gaps(stats)
    if gaps:
        lines.append("")
        lines.append(gaps)

    return "\n".join(lines)
