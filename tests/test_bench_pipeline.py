"""Tests for readbench.bench.pipeline — the fixed aggregation."""

from __future__ import annotations

import unittest

import polars as pl

from readbench.bench.engine import ResolvedDataset
from readbench.bench.errors import PipelineError
from readbench.bench.handle import make_handle
from readbench.bench.pipeline import GroupingOrder, build_plan, run_pipeline
from readbench.bench.results import DatasetLocation, OrderingKind, ReadStrategy

from bench_test_helpers import (
    EXPECTED_SECOND_TOP,
    EXPECTED_TOP_SECOND,
    FakeResolver,
    empty_events_frame,
    events_frame,
)

LOCATION = DatasetLocation("mem://events")
TOP_SECOND = GroupingOrder.for_dataset(OrderingKind.TOP_SECOND, "country", "device")
SECOND_TOP = GroupingOrder.for_dataset(OrderingKind.SECOND_TOP, "country", "device")


def _resolved(frame: pl.DataFrame) -> ResolvedDataset:
    return ResolvedDataset(LOCATION, frame.lazy(), tuple(frame.columns))


class TestGroupingOrder(unittest.TestCase):
    def test_for_dataset_top_second(self) -> None:
        self.assertEqual(TOP_SECOND.outer, "country")
        self.assertEqual(TOP_SECOND.inner, "device")

    def test_for_dataset_second_top_swaps(self) -> None:
        self.assertEqual(SECOND_TOP.outer, "device")
        self.assertEqual(SECOND_TOP.inner, "country")
        self.assertIs(SECOND_TOP.kind, OrderingKind.SECOND_TOP)

    def test_identical_columns_rejected(self) -> None:
        with self.assertRaises(ValueError):
            GroupingOrder(OrderingKind.TOP_SECOND, "country", "country")

    def test_empty_column_rejected(self) -> None:
        with self.assertRaises(ValueError):
            GroupingOrder(OrderingKind.TOP_SECOND, "", "device")


class TestRunPipeline(unittest.TestCase):
    def test_known_value_top_second(self) -> None:
        value = run_pipeline(_resolved(events_frame()), TOP_SECOND, "user_id")
        self.assertEqual(value, EXPECTED_TOP_SECOND)
        self.assertIsInstance(value, int)

    def test_known_value_second_top(self) -> None:
        value = run_pipeline(_resolved(events_frame()), SECOND_TOP, "user_id")
        self.assertEqual(value, EXPECTED_SECOND_TOP)

    def test_nulls_not_counted_as_distinct(self) -> None:
        # fr/web holds {3, null}; counting null would raise fr's max to 2.
        frame = events_frame().filter(pl.col("user_id").is_not_null())
        self.assertEqual(
            run_pipeline(_resolved(frame), TOP_SECOND, "user_id"),
            run_pipeline(_resolved(events_frame()), TOP_SECOND, "user_id"),
        )

    def test_single_group(self) -> None:
        frame = pl.DataFrame({"country": ["us"], "device": ["web"], "user_id": [7]})
        self.assertEqual(run_pipeline(_resolved(frame), TOP_SECOND, "user_id"), 1)

    def test_missing_count_column(self) -> None:
        with self.assertRaises(PipelineError) as ctx:
            run_pipeline(_resolved(events_frame()), TOP_SECOND, "session_id")
        self.assertIn("session_id", str(ctx.exception))

    def test_missing_grouping_column(self) -> None:
        order = GroupingOrder(OrderingKind.TOP_SECOND, "region", "device")
        with self.assertRaises(PipelineError):
            run_pipeline(_resolved(events_frame()), order, "user_id")

    def test_empty_dataset_has_no_groups(self) -> None:
        with self.assertRaises(PipelineError) as ctx:
            run_pipeline(_resolved(empty_events_frame()), TOP_SECOND, "user_id")
        self.assertIn("no groups", str(ctx.exception))

    def test_same_result_for_every_strategy(self) -> None:
        values = set()
        for strategy in ReadStrategy:
            handle = make_handle(strategy, LOCATION, FakeResolver())
            resolved = handle.resolve()
            if handle.fallible:
                resolved = resolved.unwrap()
            values.add(run_pipeline(resolved, TOP_SECOND, "user_id"))
        self.assertEqual(values, {EXPECTED_TOP_SECOND})


class TestBuildPlan(unittest.TestCase):
    def test_plan_is_lazy(self) -> None:
        plan = build_plan(events_frame().lazy(), TOP_SECOND, "user_id")
        self.assertIsInstance(plan, pl.LazyFrame)
        out = plan.collect()
        self.assertEqual(out.columns, ["min_max_count", "outer_groups"])
        self.assertEqual(out["outer_groups"][0], 3)


if __name__ == "__main__":
    unittest.main()
