"""The fixed aggregation pipeline timed by every trial.

For a grouping order (outer, inner) and a count column::

    A = distinct count of count_col per (outer, inner)
    B = max of A's counts per outer
    result = min over B

The structure never changes between strategies or size classes.  The
two grouping orders only swap which partition-key column plays outer
and which plays inner.
"""

from __future__ import annotations

from dataclasses import dataclass

import polars as pl

from readbench.bench.engine import ResolvedDataset
from readbench.bench.errors import PipelineError
from readbench.bench.results import OrderingKind

_DISTINCT = "distinct_count"
_MAX = "max_count"
_RESULT = "min_max_count"
_GROUPS = "outer_groups"


@dataclass(frozen=True)
class GroupingOrder:
    """An ordered pair of distinct group-by columns."""

    kind: OrderingKind
    outer: str
    inner: str

    def __post_init__(self) -> None:
        if not self.outer or not self.inner:
            raise ValueError("Grouping columns must be non-empty.")
        if self.outer == self.inner:
            raise ValueError(
                f"Grouping order needs two distinct columns, got '{self.outer}' twice."
            )

    @classmethod
    def for_dataset(cls, kind: OrderingKind, top: str, second: str) -> GroupingOrder:
        """Map an ordering kind onto a dataset's top/second key columns."""
        if kind is OrderingKind.TOP_SECOND:
            return cls(kind=kind, outer=top, inner=second)
        return cls(kind=kind, outer=second, inner=top)


def build_plan(
    frame: pl.LazyFrame,
    ordering: GroupingOrder,
    count_column: str,
) -> pl.LazyFrame:
    """Build the lazy query; nothing is executed here."""
    distinct = frame.group_by([ordering.outer, ordering.inner]).agg(
        pl.col(count_column).drop_nulls().n_unique().alias(_DISTINCT)
    )
    per_outer = distinct.group_by(ordering.outer).agg(pl.col(_DISTINCT).max().alias(_MAX))
    return per_outer.select(
        pl.col(_MAX).min().alias(_RESULT),
        pl.len().alias(_GROUPS),
    )


def run_pipeline(
    resolved: ResolvedDataset,
    ordering: GroupingOrder,
    count_column: str,
) -> int:
    """Run the aggregation and materialize the scalar on the driver.

    Raises:
        PipelineError: If a column is missing from the schema, the
            grouping produced no groups, or the engine failed while
            executing the plan.
    """
    missing = [
        col
        for col in (ordering.outer, ordering.inner, count_column)
        if col not in resolved.columns
    ]
    if missing:
        raise PipelineError(
            f"Column(s) not in schema of {resolved.location}: {', '.join(missing)}"
        )

    plan = build_plan(resolved.frame, ordering, count_column)
    try:
        out = plan.collect()
    except pl.exceptions.PolarsError as exc:
        raise PipelineError(f"Engine failed executing pipeline: {exc}") from exc

    if out.height == 0 or out[_GROUPS][0] == 0:
        raise PipelineError(
            f"Grouping by ({ordering.outer}, {ordering.inner}) produced no groups."
        )
    value = out[_RESULT][0]
    if value is None:
        raise PipelineError("Pipeline produced an undefined minimum.")
    return int(value)
