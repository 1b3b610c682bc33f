"""Tests for readbench.bench.runner — benchmark execution engine."""

from __future__ import annotations

import json
import tempfile
import threading
import unittest
from pathlib import Path

from readbench.bench.compare import compare
from readbench.bench.config import BenchConfig
from readbench.bench.results import (
    ErrorKind,
    OrderingKind,
    ReadStrategy,
    SizeClass,
    load_bench_run,
)
from readbench.bench.runner import BenchProgress, BenchRunner, quick_config
from readbench.bench.stats import summarize

from bench_test_helpers import (
    EXPECTED_SECOND_TOP,
    EXPECTED_TOP_SECOND,
    FakeResolver,
    make_dataset,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_config(**kwargs: object) -> BenchConfig:
    """Create a BenchConfig with sensible test defaults."""
    defaults: dict[str, object] = {
        "bench_id": "bench_test",
        "datasets": {"small": make_dataset()},
        "count_column": "user_id",
        "repetitions": 3,
        "warmup": 0,
        "timeout": 10.0,
    }
    defaults.update(kwargs)
    return BenchConfig(**defaults)  # type: ignore[arg-type]


class _Recorder:
    def __init__(self) -> None:
        self.events: list[BenchProgress] = []

    def __call__(self, progress: BenchProgress) -> None:
        self.events.append(progress)


# ---------------------------------------------------------------------------
# Basic execution
# ---------------------------------------------------------------------------


class TestRunnerExecution(unittest.TestCase):
    def test_sample_count(self) -> None:
        config = _make_config(repetitions=2, warmup=1)
        samples = BenchRunner(config, resolver=FakeResolver()).run()
        # 3 strategies x 2 orderings x (2 measured + 1 warmup)
        self.assertEqual(len(samples), 18)
        self.assertEqual(sum(1 for s in samples if s.warmup), 6)

    def test_every_strategy_agrees_on_the_result(self) -> None:
        samples = BenchRunner(_make_config(), resolver=FakeResolver()).run()
        self.assertTrue(all(s.succeeded for s in samples))
        top = {s.result for s in samples if s.ordering is OrderingKind.TOP_SECOND}
        second = {s.result for s in samples if s.ordering is OrderingKind.SECOND_TOP}
        self.assertEqual(top, {EXPECTED_TOP_SECOND})
        self.assertEqual(second, {EXPECTED_SECOND_TOP})

    def test_fresh_handle_per_trial(self) -> None:
        resolver = FakeResolver()
        samples = BenchRunner(_make_config(), resolver=resolver).run()
        self.assertEqual(resolver.call_count, len(samples))

    def test_meta_populated(self) -> None:
        runner = BenchRunner(_make_config(), resolver=FakeResolver())
        samples = runner.run()
        assert runner.meta is not None
        self.assertEqual(runner.meta.bench_id, "bench_test")
        self.assertEqual(runner.meta.trials_total, len(samples))
        self.assertEqual(runner.meta.trials_failed, 0)
        self.assertIn("small", runner.meta.datasets)
        self.assertTrue(runner.meta.end_time)

    def test_subset_of_strategies_and_orderings(self) -> None:
        config = _make_config(
            strategies=[ReadStrategy.DEFERRED],
            orderings=[OrderingKind.SECOND_TOP],
        )
        samples = BenchRunner(config, resolver=FakeResolver()).run()
        self.assertEqual(len(samples), 3)
        self.assertEqual({s.strategy for s in samples}, {ReadStrategy.DEFERRED})
        self.assertEqual({s.ordering for s in samples}, {OrderingKind.SECOND_TOP})

    def test_invalid_config_raises(self) -> None:
        config = _make_config(datasets={})
        with self.assertRaises(ValueError) as ctx:
            BenchRunner(config, resolver=FakeResolver()).run()
        self.assertIn("datasets", str(ctx.exception))

    def test_duplicate_size_class_rejected(self) -> None:
        config = _make_config(
            datasets={
                "a": make_dataset("a"),
                "b": make_dataset("b"),
            }
        )
        with self.assertRaises(ValueError):
            BenchRunner(config, resolver=FakeResolver()).run()


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestSchedule(unittest.TestCase):
    def _strategies_for_first_group(self, **kwargs: object) -> list[str]:
        recorder = _Recorder()
        config = _make_config(orderings=[OrderingKind.TOP_SECOND], repetitions=2, **kwargs)
        BenchRunner(config, resolver=FakeResolver(), progress_callback=recorder).run()
        return [e.strategy for e in recorder.events]

    def test_alternates_by_default(self) -> None:
        self.assertEqual(
            self._strategies_for_first_group(),
            ["eager", "deferred", "deferred_fallible"] * 2,
        )

    def test_block_schedule(self) -> None:
        self.assertEqual(
            self._strategies_for_first_group(alternate=False),
            ["eager", "eager", "deferred", "deferred", "deferred_fallible", "deferred_fallible"],
        )

    def test_warmup_comes_first(self) -> None:
        recorder = _Recorder()
        config = _make_config(
            orderings=[OrderingKind.TOP_SECOND],
            strategies=[ReadStrategy.EAGER],
            repetitions=2,
            warmup=1,
        )
        BenchRunner(config, resolver=FakeResolver(), progress_callback=recorder).run()
        self.assertEqual([e.phase for e in recorder.events], ["warmup", "measure", "measure"])
        self.assertEqual([e.repetition for e in recorder.events], [1, 2, 3])


# ---------------------------------------------------------------------------
# Failure scenarios
# ---------------------------------------------------------------------------


class TestMissingDataset(unittest.TestCase):
    """A location that cannot be resolved yields failures, never a crash."""

    def test_nonexistent_location(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = str(Path(tmp) / "no_such_dataset")
            config = _make_config(
                datasets={"small": make_dataset(location=missing)},
                repetitions=2,
            )
            # Default resolver: the real Parquet engine.
            samples = BenchRunner(config).run()

        self.assertEqual(len(samples), 12)
        self.assertTrue(all(not s.succeeded for s in samples))
        self.assertEqual({s.error_kind for s in samples}, {ErrorKind.RESOLUTION})

        stats = summarize(samples)
        self.assertEqual(len(stats), 6)
        for stat in stats:
            self.assertEqual(stat.sample_count, 2)
            self.assertEqual(stat.failure_count, 2)
            self.assertIsNone(stat.mean_ns)

        for verdict in compare(stats):
            self.assertIsNone(verdict.winner)
            self.assertEqual(len(verdict.ranked), 3)


class TestTimeoutScenario(unittest.TestCase):
    def test_hanging_dataset_does_not_block_others(self) -> None:
        config = _make_config(
            datasets={
                "small": make_dataset(),
                "large": make_dataset(
                    "large", size_class=SizeClass.LARGE, location="mem://stuck"
                ),
            },
            strategies=[ReadStrategy.DEFERRED],
            repetitions=1,
            timeout=0.05,
        )
        resolver = FakeResolver(hang_for=("mem://stuck",), hang_s=0.5)
        samples = BenchRunner(config, resolver=resolver).run()

        large = [s for s in samples if s.size_class is SizeClass.LARGE]
        small = [s for s in samples if s.size_class is SizeClass.SMALL]
        self.assertEqual(len(large), 2)
        self.assertTrue(all(s.error_kind is ErrorKind.TIMEOUT for s in large))
        self.assertTrue(all(s.succeeded for s in small))

        large_stats = [s for s in summarize(samples) if s.size_class is SizeClass.LARGE]
        self.assertTrue(all(s.timeout_count == 1 for s in large_stats))


class _OverlapResolver(FakeResolver):
    """FakeResolver that records how many calls were in flight at once."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.active = 0
        self.max_active = 0
        self._active_lock = threading.Lock()

    def __call__(self, location):  # type: ignore[no-untyped-def]
        with self._active_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            return super().__call__(location)
        finally:
            with self._active_lock:
                self.active -= 1


class TestStuckTrial(unittest.TestCase):
    def _config(self, timeout: float) -> BenchConfig:
        return _make_config(
            datasets={"small": make_dataset(location="mem://stuck")},
            strategies=[ReadStrategy.DEFERRED],
            orderings=[OrderingKind.TOP_SECOND],
            timeout=timeout,
        )

    def test_group_is_skipped_while_timed_out_trial_runs(self) -> None:
        resolver = _OverlapResolver(hang_for=("mem://stuck",), hang_s=0.5)
        samples = BenchRunner(self._config(0.05), resolver=resolver).run()

        self.assertEqual(
            [s.error_kind for s in samples],
            [ErrorKind.TIMEOUT, ErrorKind.SKIPPED, ErrorKind.SKIPPED],
        )
        self.assertEqual(resolver.call_count, 1)
        self.assertEqual(resolver.max_active, 1)
        self.assertIn("still running", samples[1].error_message)

        stats = summarize(samples)
        self.assertEqual(stats[0].failure_count, 3)
        self.assertEqual(stats[0].timeout_count, 1)

    def test_next_trial_waits_for_timed_out_worker(self) -> None:
        resolver = _OverlapResolver(hang_for=("mem://stuck",), hang_s=0.1)
        samples = BenchRunner(self._config(0.08), resolver=resolver).run()

        self.assertEqual(resolver.call_count, 3)
        self.assertEqual(resolver.max_active, 1)
        self.assertTrue(all(s.error_kind is ErrorKind.TIMEOUT for s in samples))


# ---------------------------------------------------------------------------
# Parallel groups
# ---------------------------------------------------------------------------


class TestParallel(unittest.TestCase):
    def test_workers_produce_same_samples(self) -> None:
        datasets = {
            "small": make_dataset(),
            "average": make_dataset("average", size_class=SizeClass.AVERAGE),
        }
        sequential = BenchRunner(
            _make_config(datasets=datasets), resolver=FakeResolver()
        ).run()
        parallel = BenchRunner(
            _make_config(datasets=datasets, workers=4), resolver=FakeResolver()
        ).run()

        def _keys(samples):  # type: ignore[no-untyped-def]
            return sorted((s.dataset, s.ordering.value, s.strategy.value, s.repetition)
                          for s in samples)

        self.assertEqual(len(parallel), 36)
        self.assertEqual(_keys(sequential), _keys(parallel))
        self.assertTrue(all(s.succeeded for s in parallel))

    def test_worker_exception_is_reraised(self) -> None:
        datasets = {
            "small": make_dataset(),
            "average": make_dataset("average", size_class=SizeClass.AVERAGE),
        }

        def _progress(progress: BenchProgress) -> None:
            if progress.dataset == "average":
                raise RuntimeError("progress display broke")

        with tempfile.TemporaryDirectory() as tmp:
            config = _make_config(datasets=datasets, workers=2, results_dir=Path(tmp))
            runner = BenchRunner(config, resolver=FakeResolver(), progress_callback=_progress)
            with self.assertRaises(RuntimeError):
                runner.run()
            self.assertFalse((config.output_dir / "bench_report.json").exists())  # type: ignore[operator]


# ---------------------------------------------------------------------------
# Output files
# ---------------------------------------------------------------------------


class TestOutputFiles(unittest.TestCase):
    def test_writes_meta_samples_and_report(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = _make_config(results_dir=Path(tmp))
            samples = BenchRunner(config, resolver=FakeResolver()).run()
            out = Path(tmp) / "bench_test"

            self.assertTrue((out / "bench_meta.json").exists())
            lines = (out / "bench_samples.jsonl").read_text().splitlines()
            self.assertEqual(len(lines), len(samples))

            report = json.loads((out / "bench_report.json").read_text())
            self.assertEqual(len(report["verdicts"]), 2)
            self.assertEqual(report["bench_id"], "bench_test")

            meta, loaded = load_bench_run(out)
            self.assertEqual(meta.trials_total, len(samples))
            self.assertEqual(len(loaded), len(samples))

    def test_no_results_dir_writes_nothing(self) -> None:
        config = _make_config()
        self.assertIsNone(config.output_dir)
        BenchRunner(config, resolver=FakeResolver()).run()


class TestQuickConfig(unittest.TestCase):
    def test_quick_settings(self) -> None:
        config = quick_config(_make_config(repetitions=10, warmup=2, name="Nightly"))
        self.assertEqual(config.repetitions, 3)
        self.assertEqual(config.warmup, 0)
        self.assertEqual(config.name, "Nightly (quick)")

    def test_quick_default_name(self) -> None:
        self.assertEqual(quick_config(_make_config()).name, "Quick benchmark")


if __name__ == "__main__":
    unittest.main()
