"""Benchmark result data structures and serialization.

Hierarchy::

    BenchMeta (top level — one benchmark execution)
      → datasets: dict[str, DatasetDef]
      → config: dict (repetitions, timing mode, ...)

    TrialSample (one per trial execution, append-only)

Files produced::

    bench_meta.json      — BenchMeta (datasets, config, timestamps)
    bench_samples.jsonl  — one TrialSample per line
    bench_report.json    — summary stats and comparison verdicts
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

log = logging.getLogger("readbench")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ReadStrategy(enum.Enum):
    """When dataset resolution is forced, and how its failure is reported."""

    EAGER = "eager"
    DEFERRED = "deferred"
    DEFERRED_FALLIBLE = "deferred_fallible"


class SizeClass(enum.Enum):
    """Coarse dataset scale bucket, assigned in configuration."""

    SMALL = "small"  # < 1 GB, single file
    AVERAGE = "average"  # < 100 GB, partitioned
    LARGE = "large"  # >= 500 GB, partitioned

    @property
    def partitioned(self) -> bool:
        return self is not SizeClass.SMALL


class OrderingKind(enum.Enum):
    """Which partition-key column is the outer group-by key."""

    TOP_SECOND = "top_second"
    SECOND_TOP = "second_top"


class TimingMode(enum.Enum):
    """Whether the timed window includes the ``resolve()`` call."""

    EXCLUDE_RESOLVE = "exclude_resolve"
    INCLUDE_RESOLVE = "include_resolve"


class ErrorKind(enum.Enum):
    """Failure categories recorded on a TrialSample."""

    RESOLUTION = "resolution_error"
    PIPELINE = "pipeline_error"
    TIMEOUT = "timeout_error"
    SKIPPED = "skipped"  # an earlier timed-out trial of the group was still running


# ---------------------------------------------------------------------------
# Dataset definition (configuration input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatasetLocation:
    """Opaque reference to a partitioned dataset."""

    path: str

    @property
    def is_remote(self) -> bool:
        """True for URL locations such as ``s3://bucket/events``."""
        return "://" in self.path

    def __str__(self) -> str:
        return self.path


@dataclass
class DatasetDef:
    """A dataset to benchmark, tagged with its size class and key columns."""

    name: str
    location: DatasetLocation
    size_class: SizeClass
    top_column: str
    second_column: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (sparse: omits defaults)."""
        d: dict[str, Any] = {
            "name": self.name,
            "location": self.location.path,
            "size_class": self.size_class.value,
            "top_column": self.top_column,
            "second_column": self.second_column,
        }
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetDef:
        """Deserialize from a dict."""
        return cls(
            name=data["name"],
            location=DatasetLocation(data["location"]),
            size_class=SizeClass(data["size_class"]),
            top_column=data["top_column"],
            second_column=data["second_column"],
            description=data.get("description", ""),
        )


# ---------------------------------------------------------------------------
# Trial-level result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrialSample:
    """Result of a single trial execution."""

    strategy: ReadStrategy
    ordering: OrderingKind
    size_class: SizeClass
    duration_ns: int
    succeeded: bool
    error_kind: ErrorKind | None = None
    error_message: str = ""
    result: int | None = None  # pipeline scalar, successful trials only
    dataset: str = ""
    repetition: int = 1  # 1-based
    warmup: bool = False

    @property
    def key(self) -> tuple[ReadStrategy, OrderingKind, SizeClass]:
        """Grouping key used by the statistics layer."""
        return (self.strategy, self.ordering, self.size_class)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "strategy": self.strategy.value,
            "ordering": self.ordering.value,
            "size_class": self.size_class.value,
            "dataset": self.dataset,
            "repetition": self.repetition,
            "warmup": self.warmup,
            "duration_ns": self.duration_ns,
            "succeeded": self.succeeded,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrialSample:
        """Deserialize from a dict, ignoring unknown fields."""
        error_kind = data.get("error_kind")
        return cls(
            strategy=ReadStrategy(data["strategy"]),
            ordering=OrderingKind(data["ordering"]),
            size_class=SizeClass(data["size_class"]),
            duration_ns=int(data["duration_ns"]),
            succeeded=bool(data["succeeded"]),
            error_kind=ErrorKind(error_kind) if error_kind else None,
            error_message=data.get("error_message", ""),
            result=data.get("result"),
            dataset=data.get("dataset", ""),
            repetition=data.get("repetition", 1),
            warmup=data.get("warmup", False),
        )

    def to_jsonl_line(self) -> str:
        """Serialize to a single JSONL line."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_jsonl_line(cls, line: str) -> TrialSample:
        """Deserialize from a single JSONL line."""
        return cls.from_dict(json.loads(line))


# ---------------------------------------------------------------------------
# Run-level metadata
# ---------------------------------------------------------------------------


@dataclass
class BenchMeta:
    """Metadata for a complete benchmark run."""

    bench_id: str
    name: str = ""
    description: str = ""
    datasets: dict[str, DatasetDef] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    cli_args: list[str] = field(default_factory=list)
    start_time: str = ""
    end_time: str = ""
    trials_total: int = 0
    trials_failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "bench_id": self.bench_id,
            "name": self.name,
            "description": self.description,
            "datasets": {name: ds.to_dict() for name, ds in self.datasets.items()},
            "config": self.config,
            "cli_args": self.cli_args,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "trials_total": self.trials_total,
            "trials_failed": self.trials_failed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchMeta:
        """Deserialize from a dict."""
        meta = cls(bench_id=data["bench_id"])
        meta.name = data.get("name", "")
        meta.description = data.get("description", "")
        meta.datasets = {
            name: DatasetDef.from_dict(ds) for name, ds in data.get("datasets", {}).items()
        }
        meta.config = data.get("config", {})
        meta.cli_args = data.get("cli_args", [])
        meta.start_time = data.get("start_time", "")
        meta.end_time = data.get("end_time", "")
        meta.trials_total = data.get("trials_total", 0)
        meta.trials_failed = data.get("trials_failed", 0)
        return meta


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def save_bench_run(
    output_dir: Path,
    meta: BenchMeta,
    samples: list[TrialSample],
) -> None:
    """Save a complete benchmark run to disk.

    Creates ``output_dir/bench_meta.json`` and
    ``output_dir/bench_samples.jsonl``.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    meta_path = output_dir / "bench_meta.json"
    meta_path.write_text(json.dumps(meta.to_dict(), indent=2) + "\n")
    log.info("Wrote %s", meta_path)

    samples_path = output_dir / "bench_samples.jsonl"
    with open(samples_path, "w") as f:
        for sample in samples:
            f.write(sample.to_jsonl_line() + "\n")
    log.info("Wrote %d trial samples to %s", len(samples), samples_path)


def load_bench_run(run_dir: Path) -> tuple[BenchMeta, list[TrialSample]]:
    """Load a benchmark run from disk.

    Raises:
        FileNotFoundError: If ``bench_meta.json`` is missing.
    """
    meta_path = run_dir / "bench_meta.json"
    if not meta_path.exists():
        raise FileNotFoundError(f"No bench_meta.json in {run_dir}")

    meta = BenchMeta.from_dict(json.loads(meta_path.read_text()))

    samples: list[TrialSample] = []
    samples_path = run_dir / "bench_samples.jsonl"
    if samples_path.exists():
        for line in samples_path.read_text().splitlines():
            line = line.strip()
            if line:
                samples.append(TrialSample.from_jsonl_line(line))

    return meta, samples


def append_sample(samples_path: Path, sample: TrialSample) -> None:
    """Append a single trial sample to the JSONL file.

    Used for incremental writing during long benchmark runs so that
    samples are preserved if the process is interrupted.
    """
    with open(samples_path, "a") as f:
        f.write(sample.to_jsonl_line() + "\n")
