"""Command-line interface for readbench.

Subcommands:
    readbench run       Execute a benchmark
    readbench show      Display a benchmark's results
    readbench compare   Re-rank a run's strategies with other settings
    readbench export    Export results to CSV/Markdown/JSON
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from readbench import __version__
from readbench.logging import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """readbench — Compare dataset read strategies on a fixed aggregation."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command("run")
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, path_type=Path),
    help="YAML profile defining datasets and settings.",
)
@click.option(
    "--dataset",
    "inline_datasets",
    type=str,
    multiple=True,
    help="Inline dataset: 'name:location=...,size=...,top=...,second=...' (repeatable).",
)
@click.option("--count-column", type=str, default=None, help="Column whose distinct values are counted.")
@click.option(
    "--strategy",
    "strategies",
    type=str,
    multiple=True,
    help="Read strategy to measure (repeatable; default: all).",
)
@click.option(
    "--ordering",
    "orderings",
    type=str,
    multiple=True,
    help="Grouping order to measure (repeatable; default: both).",
)
@click.option("--repetitions", type=int, default=None, help="Measured repetitions (default: 8).")
@click.option("--warmup", type=int, default=None, help="Unrecorded warm-up repetitions (default: 0).")
@click.option("--timeout", type=float, default=None, help="Per-trial timeout in seconds (default: 1800).")
@click.option(
    "--timing-mode",
    type=click.Choice(["exclude_resolve", "include_resolve"]),
    default=None,
    help="Whether the timed window includes resolution.",
)
@click.option(
    "--noise-threshold",
    type=float,
    default=None,
    help="Fractional lead required to declare a winner (default: 0.05).",
)
@click.option(
    "--alternate/--no-alternate",
    default=None,
    help="Alternate strategies per repetition.",
)
@click.option("--workers", type=int, default=None, help="Run groups on this many threads.")
@click.option(
    "--results-dir",
    type=click.Path(path_type=Path),
    default=Path("results"),
    show_default=True,
    help="Results output directory.",
)
@click.option("--name", type=str, default=None, help="Human-readable benchmark name.")
@click.option(
    "--quick",
    is_flag=True,
    default=False,
    help="Quick mode: 3 repetitions, no warmup.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run_cmd(  # noqa: PLR0913
    profile_path: Path | None,
    inline_datasets: tuple[str, ...],
    count_column: str | None,
    strategies: tuple[str, ...],
    orderings: tuple[str, ...],
    repetitions: int | None,
    warmup: int | None,
    timeout: float | None,
    timing_mode: str | None,
    noise_threshold: float | None,
    alternate: bool | None,
    workers: int | None,
    results_dir: Path,
    name: str | None,
    quick: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run the read-strategy benchmark.

    Use --profile for a YAML profile or --dataset for inline datasets.

    \b
    Examples:
        # From a YAML profile
        readbench run --profile events.yaml

        # Inline, one small dataset, deferred strategies only
        readbench run --count-column user_id \\
            --dataset "small:location=data/events.parquet,size=small,top=country,second=device" \\
            --strategy deferred --strategy deferred-fallible
    """
    from readbench.bench.config import config_from_profile, load_profile, parse_inline_dataset
    from readbench.bench.display import format_bench_show
    from readbench.bench.runner import BenchRunner, quick_config

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "name": name,
        "count_column": count_column,
        "strategies": list(strategies) or None,
        "orderings": list(orderings) or None,
        "repetitions": repetitions,
        "warmup": warmup,
        "timeout": timeout,
        "timing_mode": timing_mode,
        "noise_threshold": noise_threshold,
        "alternate": alternate,
        "workers": workers,
        "results_dir": str(results_dir),
    }

    try:
        profile_data = load_profile(profile_path) if profile_path else {}
        config = config_from_profile(profile_data, cli_overrides=cli_overrides)
        for spec in inline_datasets:
            ds = parse_inline_dataset(spec)
            config.datasets[ds.name] = ds
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    config.cli_args = sys.argv[1:]
    if quick:
        config = quick_config(config)

    runner = BenchRunner(config)
    try:
        samples = runner.run()
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    assert runner.meta is not None
    click.echo()
    click.echo(format_bench_show(runner.meta, samples))
    click.echo()
    click.echo(f"Results saved to: {config.output_dir}")


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@main.command("show")
@click.argument("result_dir", type=click.Path(exists=True, path_type=Path))
def show(result_dir: Path) -> None:
    """Display results from a benchmark run.

    RESULT_DIR is the path to a benchmark output directory
    containing bench_meta.json and bench_samples.jsonl.
    """
    from readbench.bench.display import format_bench_show
    from readbench.bench.results import load_bench_run

    try:
        meta, samples = load_bench_run(result_dir)
    except FileNotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    click.echo(format_bench_show(meta, samples))


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


@main.command("compare")
@click.argument("result_dir", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--noise-threshold",
    type=float,
    default=None,
    help="Fractional lead required to declare a winner (default: the run's setting).",
)
@click.option(
    "--baseline",
    type=str,
    default="eager",
    show_default=True,
    help="Strategy that improvements are measured against.",
)
@click.option("--json", "as_json", is_flag=True, help="Output verdicts as JSON.")
def compare_cmd(
    result_dir: Path,
    noise_threshold: float | None,
    baseline: str,
    as_json: bool,
) -> None:
    """Rank strategies from a saved run, optionally with another threshold.

    \b
    Examples:
        readbench compare results/bench_20260301_120000
        readbench compare results/bench_20260301_120000 --noise-threshold 0.1
        readbench compare results/bench_20260301_120000 --baseline deferred
    """
    from readbench.bench.compare import compare
    from readbench.bench.config import DEFAULT_NOISE_THRESHOLD, parse_strategy
    from readbench.bench.display import format_verdicts
    from readbench.bench.results import load_bench_run
    from readbench.bench.stats import summarize

    try:
        baseline_strategy = parse_strategy(baseline)
        meta, samples = load_bench_run(result_dir)
    except (ValueError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if noise_threshold is None:
        noise_threshold = float(meta.config.get("noise_threshold", DEFAULT_NOISE_THRESHOLD))
    if not 0 <= noise_threshold < 1:
        click.echo("Error: --noise-threshold must be in [0, 1).", err=True)
        raise SystemExit(1)

    verdicts = compare(
        summarize(samples),
        noise_threshold=noise_threshold,
        baseline=baseline_strategy,
    )

    if as_json:
        import json

        click.echo(json.dumps([v.to_dict() for v in verdicts], indent=2))
    else:
        click.echo(format_verdicts(verdicts))


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@main.command("export")
@click.argument("result_dir", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "csv-summary", "markdown", "json"]),
    default="csv",
    help="Export format.",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (default: stdout).",
)
def export(result_dir: Path, fmt: str, output: Path | None) -> None:
    """Export benchmark results to CSV, Markdown or JSON.

    \b
    Examples:
        readbench export results/bench_001 --format csv > samples.csv
        readbench export results/bench_001 --format csv-summary > summary.csv
        readbench export results/bench_001 --format markdown -o report.md
    """
    from readbench.bench.export import (
        export_csv,
        export_csv_summary,
        export_json,
        export_markdown,
    )
    from readbench.bench.results import load_bench_run

    try:
        meta, samples = load_bench_run(result_dir)
    except FileNotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if fmt == "csv":
        text = export_csv(meta, samples)
    elif fmt == "csv-summary":
        text = export_csv_summary(meta, samples)
    elif fmt == "json":
        text = export_json(meta, samples)
    else:
        text = export_markdown(meta, samples)

    if output:
        output.write_text(text)
        click.echo(f"Exported to {output}")
    else:
        click.echo(text)
