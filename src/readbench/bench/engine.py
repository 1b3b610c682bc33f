"""Boundary to the columnar query engine.

``open_partitioned_dataset`` is the only place readbench touches the
storage layer.  It builds a Polars lazy scan over a Parquet file or a
hive-partitioned directory and forces schema discovery, which is what
"resolution" means for the benchmark: files are enumerated and footers
read, but no row data is scanned.

Anything with the same signature can stand in for it (see the
``resolver`` argument of the handles and the runner).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import polars as pl

from readbench.bench.errors import ResolutionError
from readbench.bench.results import DatasetLocation
from readbench.logging import get_logger

log = get_logger("engine")


@dataclass(frozen=True)
class ResolvedDataset:
    """A usable handle to a dataset whose schema has been discovered."""

    location: DatasetLocation
    frame: pl.LazyFrame
    columns: tuple[str, ...]
    file_count: int = 1  # 0 when unknown (remote locations)

    def has_columns(self, *names: str) -> bool:
        return all(name in self.columns for name in names)


Resolver = Callable[[DatasetLocation], ResolvedDataset]


def open_partitioned_dataset(location: DatasetLocation) -> ResolvedDataset:
    """Resolve *location* into a lazy Polars frame with a known schema.

    A directory is scanned recursively with hive partitioning, so
    ``key=value`` path segments become columns.  A single file is
    scanned as-is.  A URL (``s3://``, ``gs://`` and the like) goes straight
    to Polars as a hive-partitioned glob; ``file_count`` is 0 for those
    because the files are never listed here.

    Raises:
        ResolutionError: If the location does not exist, contains no
            Parquet files, or cannot be read by the engine.
    """
    if location.is_remote:
        # Object stores cannot be listed up front; Polars expands the glob.
        source = location.path
        if not source.endswith(".parquet"):
            source = source.rstrip("/") + "/**/*.parquet"
        return _scan(location, source, hive=True, file_count=0)

    path = Path(location.path)
    if not path.exists():
        raise ResolutionError(location.path, "location does not exist")

    if path.is_dir():
        files = sorted(path.rglob("*.parquet"))
        if not files:
            raise ResolutionError(location.path, "no parquet files under directory")
        source = str(path / "**" / "*.parquet")
        hive = True
    else:
        files = [path]
        source = str(path)
        hive = False

    return _scan(location, source, hive=hive, file_count=len(files))


def _scan(
    location: DatasetLocation, source: str, *, hive: bool, file_count: int
) -> ResolvedDataset:
    try:
        frame = pl.scan_parquet(source, hive_partitioning=hive)
        schema = frame.collect_schema()
    except (pl.exceptions.PolarsError, OSError) as exc:
        raise ResolutionError(location.path, str(exc)) from exc

    columns = tuple(schema.names())
    if not columns:
        raise ResolutionError(location.path, "dataset has an empty schema")

    log.debug(
        "Resolved %s: %s file(s), columns=%s",
        location.path,
        file_count or "?",
        ", ".join(columns),
    )
    return ResolvedDataset(
        location=location,
        frame=frame,
        columns=columns,
        file_count=file_count,
    )
