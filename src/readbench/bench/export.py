"""Export benchmark results to CSV, Markdown and JSON.

CSV (long format): one row per trial sample, the raw data for
pandas/R.  CSV summary: one row per (strategy, ordering, size class).
Markdown: verdict tables for reports and issues.  JSON: the structured
report written next to the samples as ``bench_report.json``.
"""

from __future__ import annotations

import csv
import io
import json

from readbench.bench.compare import compare, win_counts
from readbench.bench.config import DEFAULT_NOISE_THRESHOLD
from readbench.bench.results import BenchMeta, TrialSample
from readbench.bench.stats import summarize


def _threshold(meta: BenchMeta, noise_threshold: float | None) -> float:
    if noise_threshold is not None:
        return noise_threshold
    return float(meta.config.get("noise_threshold", DEFAULT_NOISE_THRESHOLD))


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def export_csv(meta: BenchMeta, samples: list[TrialSample]) -> str:
    """Export samples as CSV (long format), warm-ups included.

    Columns:
        dataset, size_class, ordering, strategy, repetition, warmup,
        duration_ns, succeeded, error_kind, result, error_message
    """
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(
        [
            "dataset",
            "size_class",
            "ordering",
            "strategy",
            "repetition",
            "warmup",
            "duration_ns",
            "succeeded",
            "error_kind",
            "result",
            "error_message",
        ]
    )

    for s in samples:
        writer.writerow(
            [
                s.dataset,
                s.size_class.value,
                s.ordering.value,
                s.strategy.value,
                s.repetition,
                s.warmup,
                s.duration_ns,
                s.succeeded,
                s.error_kind.value if s.error_kind else "",
                "" if s.result is None else s.result,
                s.error_message,
            ]
        )

    return output.getvalue()


def export_csv_summary(meta: BenchMeta, samples: list[TrialSample]) -> str:
    """Export summary statistics as CSV, one row per group.

    Groups with no successful trials keep empty timing cells.
    """
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(
        [
            "size_class",
            "ordering",
            "strategy",
            "samples",
            "successes",
            "failures",
            "timeouts",
            "mean_ns",
            "stddev_ns",
            "median_ns",
            "cv",
            "outliers",
        ]
    )

    for st in summarize(samples):
        d = st.durations
        writer.writerow(
            [
                st.size_class.value,
                st.ordering.value,
                st.strategy.value,
                st.sample_count,
                st.success_count,
                st.failure_count,
                st.timeout_count,
                f"{d.mean:.0f}" if d else "",
                f"{d.stdev:.0f}" if d else "",
                f"{d.median:.0f}" if d else "",
                f"{d.cv:.6f}" if d else "",
                st.outlier_count,
            ]
        )

    return output.getvalue()


# ---------------------------------------------------------------------------
# JSON report
# ---------------------------------------------------------------------------


def export_json(
    meta: BenchMeta,
    samples: list[TrialSample],
    *,
    noise_threshold: float | None = None,
) -> str:
    """Export the structured comparison report as JSON."""
    stats = summarize(samples)
    verdicts = compare(stats, noise_threshold=_threshold(meta, noise_threshold))
    report = {
        "bench_id": meta.bench_id,
        "name": meta.name,
        "config": meta.config,
        "summary": [st.to_dict() for st in stats],
        "verdicts": [v.to_dict() for v in verdicts],
        "wins": win_counts(verdicts),
    }
    return json.dumps(report, indent=2) + "\n"


# ---------------------------------------------------------------------------
# Markdown export
# ---------------------------------------------------------------------------


def _ms(value: float | None) -> str:
    return "—" if value is None else f"{value / 1e6:.1f}"


def export_markdown(
    meta: BenchMeta,
    samples: list[TrialSample],
    *,
    noise_threshold: float | None = None,
) -> str:
    """Export results as a Markdown report."""
    threshold = _threshold(meta, noise_threshold)
    verdicts = compare(summarize(samples), noise_threshold=threshold)

    lines: list[str] = []
    title = meta.name or meta.bench_id
    lines.append(f"# {title}")
    lines.append("")
    if meta.description:
        lines.append(meta.description)
        lines.append("")

    lines.append("## Datasets")
    lines.append("")
    for name, ds in meta.datasets.items():
        lines.append(
            f"- **{name}** ({ds.size_class.value}): `{ds.location}` "
            f"keys {ds.top_column}, {ds.second_column}"
        )
    lines.append("")

    cfg = meta.config
    lines.append(
        f"Repetitions: {cfg.get('repetitions', '?')} measured + {cfg.get('warmup', 0)} warmup, "
        f"timing mode: {cfg.get('timing_mode', '?')}, "
        f"noise threshold: {threshold * 100:.1f}%"
    )
    lines.append("")

    lines.append("## Results")
    for v in verdicts:
        lines.append("")
        lines.append(f"### {v.size_class.value} / {v.ordering.value}: winner **{v.winner_label}**")
        lines.append("")
        lines.append("| Rank | Strategy | Mean (ms) | Stddev (ms) | vs baseline | Failures |")
        lines.append("|---:|---|---:|---:|---:|---:|")
        for rank, r in enumerate(v.ranked, start=1):
            improvement = (
                "—"
                if r.relative_improvement_pct is None
                else f"{r.relative_improvement_pct:+.1f}%"
            )
            failures = f"{r.failure_count}/{r.sample_count}"
            lines.append(
                f"| {rank} | {r.strategy.value} | {_ms(r.mean_ns)} | {_ms(r.stddev_ns)} | "
                f"{improvement} | {failures} |"
            )
        if v.result_mismatch:
            lines.append("")
            lines.append("> Strategies produced different pipeline results for this group.")

    lines.append("")
    lines.append(f"*Generated by readbench on {meta.start_time or 'unknown'}*")
    return "\n".join(lines)
