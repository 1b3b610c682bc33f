"""Benchmark execution engine.

Orchestrates:
1. Configuration validation
2. Expansion into (dataset, grouping order) groups
3. Repeated trial execution per strategy, each with a fresh handle
4. Incremental sample writing
5. Progress reporting

Execution strategies within a group:
- Alternating (default for several strategies): repetition 1 of every
  strategy, then repetition 2, and so on, so slow drift in the cluster
  is spread evenly over the strategies.
- Block: all repetitions of one strategy before the next.

Groups run one after another by default.  With ``workers > 1``,
independent groups run on a thread pool; trials inside one group are
always sequential.  A trial abandoned on timeout may leave its worker
thread running; later trials of the same group wait up to one more
timeout for it and are recorded as skipped while it is still alive.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from readbench.bench.config import BenchConfig, validate_config
from readbench.bench.engine import Resolver, open_partitioned_dataset
from readbench.bench.pipeline import GroupingOrder
from readbench.bench.results import (
    BenchMeta,
    DatasetDef,
    ErrorKind,
    ReadStrategy,
    TrialSample,
    append_sample,
    save_bench_run,
)
from readbench.bench.timing import Clock, default_clock, wait_for_workers
from readbench.bench.trial import execute_trial

log = logging.getLogger("readbench")


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class BenchProgress:
    """Progress info passed to the callback."""

    phase: str  # "warmup" or "measure"
    dataset: str
    size_class: str
    ordering: str
    strategy: str
    repetition: int  # 1-based, counting warmup
    total_repetitions: int
    groups_done: int
    groups_total: int
    duration_ns: int = 0
    status: str = ""  # "ok" or an error kind


# Type alias for the progress callback.
ProgressCallback = Any  # Callable[[BenchProgress], None] | None


# ---------------------------------------------------------------------------
# BenchRunner
# ---------------------------------------------------------------------------


class BenchRunner:
    """Executes a benchmark run according to a BenchConfig.

    Usage::

        config = BenchConfig(...)
        runner = BenchRunner(config)
        samples = runner.run()
        runner.meta  # run metadata, also saved to config.output_dir
    """

    def __init__(
        self,
        config: BenchConfig,
        *,
        resolver: Resolver = open_partitioned_dataset,
        progress_callback: ProgressCallback = None,
        clock: Clock = default_clock,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.clock = clock
        self.progress: Any = progress_callback or self._default_progress
        self.meta: BenchMeta | None = None
        self._samples: list[TrialSample] = []
        self._samples_path: Path | None = None
        self._lock = threading.Lock()

    def run(self) -> list[TrialSample]:
        """Execute the full benchmark.

        Returns:
            Every TrialSample in execution order, warm-ups included
            (flagged with ``warmup=True``).

        Raises:
            ValueError: If configuration is invalid.

        Exceptions raised outside a trial (a failing progress callback,
        say) propagate.  With parallel groups the first one is re-raised
        once every group has finished, and no report is written.
        """
        errors = validate_config(self.config)
        fatal = [e for e in errors if e.severity == "error"]
        warnings = [e for e in errors if e.severity == "warning"]
        for w in warnings:
            log.warning("Config warning: %s: %s", w.field, w.message)
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid benchmark configuration:\n" + "\n".join(messages))

        groups = self._groups()
        meta = BenchMeta(
            bench_id=self.config.bench_id,
            name=self.config.name,
            description=self.config.description,
            datasets=dict(self.config.datasets),
            config=self.config.to_meta_dict(),
            cli_args=self.config.cli_args,
            start_time=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        )
        self.meta = meta
        self._samples = []

        output_dir = self.config.output_dir
        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            self._samples_path = output_dir / "bench_samples.jsonl"
            self._samples_path.write_text("")
            (output_dir / "bench_meta.json").write_text(json.dumps(meta.to_dict(), indent=2) + "\n")

        log.info(
            "Benchmarking %d group(s) x %d strateg%s x %d repetition(s)",
            len(groups),
            len(self.config.strategies),
            "y" if len(self.config.strategies) == 1 else "ies",
            self.config.total_repetitions,
        )

        if self.config.workers > 1 and len(groups) > 1:
            self._run_parallel(groups)
        else:
            for idx, (dataset, ordering) in enumerate(groups):
                self._run_group(dataset, ordering, idx, len(groups))

        meta.end_time = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        meta.trials_total = len(self._samples)
        meta.trials_failed = sum(1 for s in self._samples if not s.succeeded)

        if output_dir is not None:
            from readbench.bench.export import export_json

            save_bench_run(output_dir, meta, self._samples)
            report_path = output_dir / "bench_report.json"
            report_path.write_text(
                export_json(meta, self._samples, noise_threshold=self.config.noise_threshold)
            )
            log.info("Benchmark complete: %s", output_dir)
        else:
            log.info(
                "Benchmark complete: %d trials, %d failed",
                meta.trials_total,
                meta.trials_failed,
            )

        return list(self._samples)

    def _groups(self) -> list[tuple[DatasetDef, GroupingOrder]]:
        """Expand datasets x orderings into independent groups."""
        groups: list[tuple[DatasetDef, GroupingOrder]] = []
        for dataset in self.config.datasets.values():
            for kind in self.config.orderings:
                ordering = GroupingOrder.for_dataset(
                    kind, dataset.top_column, dataset.second_column
                )
                groups.append((dataset, ordering))
        return groups

    def _schedule(self) -> list[tuple[ReadStrategy, int]]:
        """Order of (strategy, repetition index) pairs within a group."""
        strategies = self.config.strategies
        reps = range(self.config.total_repetitions)
        if self.config.should_alternate and len(strategies) > 1:
            return [(s, r) for r in reps for s in strategies]
        return [(s, r) for s in strategies for r in reps]

    def _run_group(
        self,
        dataset: DatasetDef,
        ordering: GroupingOrder,
        group_idx: int,
        groups_total: int,
    ) -> list[TrialSample]:
        """Run every trial of one (dataset, ordering) group, in order."""
        total = self.config.total_repetitions
        samples: list[TrialSample] = []
        stragglers: list[threading.Thread] = []
        grace = self.config.timeout

        for strategy, rep_idx in self._schedule():
            is_warmup = rep_idx < self.config.warmup
            if stragglers:
                stragglers = wait_for_workers(stragglers, grace)
            if stragglers:
                # Stop waiting on every trial once the group is known to be stuck.
                grace = 0.0
                log.warning(
                    "Skipping %s/%s %s rep %d: %d timed-out trial(s) still running",
                    dataset.name,
                    ordering.kind.value,
                    strategy.value,
                    rep_idx + 1,
                    len(stragglers),
                )
                sample = TrialSample(
                    strategy=strategy,
                    ordering=ordering.kind,
                    size_class=dataset.size_class,
                    duration_ns=0,
                    succeeded=False,
                    error_kind=ErrorKind.SKIPPED,
                    error_message=(
                        f"skipped: {len(stragglers)} timed-out trial(s) of this group still running"
                    ),
                    dataset=dataset.name,
                    repetition=rep_idx + 1,
                    warmup=is_warmup,
                )
            else:
                grace = self.config.timeout
                sample = execute_trial(
                    strategy=strategy,
                    location=dataset.location,
                    ordering=ordering,
                    size_class=dataset.size_class,
                    count_column=self.config.count_column,
                    timing_mode=self.config.timing_mode,
                    timeout=self.config.timeout,
                    resolver=self.resolver,
                    clock=self.clock,
                    dataset=dataset.name,
                    repetition=rep_idx + 1,
                    warmup=is_warmup,
                    stragglers=stragglers,
                )
            self._record(sample)
            samples.append(sample)

            self.progress(
                BenchProgress(
                    phase="warmup" if is_warmup else "measure",
                    dataset=dataset.name,
                    size_class=dataset.size_class.value,
                    ordering=ordering.kind.value,
                    strategy=strategy.value,
                    repetition=rep_idx + 1,
                    total_repetitions=total,
                    groups_done=group_idx,
                    groups_total=groups_total,
                    duration_ns=sample.duration_ns,
                    status="ok" if sample.succeeded else sample.error_kind.value,  # type: ignore[union-attr]
                )
            )

        return samples

    def _run_parallel(self, groups: list[tuple[DatasetDef, GroupingOrder]]) -> None:
        """Run independent groups concurrently, one thread per group."""
        workers = min(self.config.workers, len(groups))
        log.info("Running %d groups on %d workers", len(groups), workers)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._run_group, dataset, ordering, idx, len(groups)): (
                    dataset,
                    ordering,
                )
                for idx, (dataset, ordering) in enumerate(groups)
            }
            first_error: Exception | None = None
            for future in as_completed(futures):
                dataset, ordering = futures[future]
                try:
                    future.result()
                except Exception as exc:
                    log.error(
                        "Worker exception for %s/%s: %s",
                        dataset.name,
                        ordering.kind.value,
                        exc,
                    )
                    if first_error is None:
                        first_error = exc

        if first_error is not None:
            raise first_error

    def _record(self, sample: TrialSample) -> None:
        with self._lock:
            self._samples.append(sample)
            if self._samples_path is not None:
                append_sample(self._samples_path, sample)

    @staticmethod
    def _default_progress(progress: BenchProgress) -> None:
        """Default progress callback: log one line per trial."""
        marker = "W" if progress.phase == "warmup" else "M"
        group = f"[{progress.groups_done + 1}/{progress.groups_total}]"
        line = (
            f"  {group} {progress.dataset:12s} {progress.ordering:10s} "
            f"{progress.strategy:17s} "
            f"{marker}{progress.repetition}/{progress.total_repetitions} "
        )
        if progress.duration_ns:
            line += f"{progress.duration_ns / 1e9:9.3f}s "
        if progress.status:
            line += f"[{progress.status}]"
        log.info(line)


# ---------------------------------------------------------------------------
# Quick mode helper
# ---------------------------------------------------------------------------


def quick_config(config: BenchConfig) -> BenchConfig:
    """Apply quick mode settings for a fast smoke run.

    Reduces repetitions to 3 and drops warmup.
    """
    config.repetitions = 3
    config.warmup = 0
    config.name = f"{config.name} (quick)" if config.name else "Quick benchmark"
    return config
