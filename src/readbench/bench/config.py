"""Benchmark configuration and profile loading.

Handles:
- Loading benchmark profiles from YAML files.
- Parsing inline dataset definitions from CLI arguments.
- Merging CLI options with profile defaults.
- Validating the final configuration before execution.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from readbench.bench.results import (
    DatasetDef,
    DatasetLocation,
    OrderingKind,
    ReadStrategy,
    SizeClass,
    TimingMode,
)

log = logging.getLogger("readbench")

DEFAULT_REPETITIONS = 8
DEFAULT_TIMEOUT = 1800.0
DEFAULT_NOISE_THRESHOLD = 0.05


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


@dataclass
class BenchConfig:
    """Resolved configuration for a benchmark run."""

    # Identity
    bench_id: str = ""  # Auto-generated if empty
    name: str = ""
    description: str = ""

    # What to measure
    datasets: dict[str, DatasetDef] = field(default_factory=dict)
    count_column: str = ""
    strategies: list[ReadStrategy] = field(default_factory=lambda: list(ReadStrategy))
    orderings: list[OrderingKind] = field(default_factory=lambda: list(OrderingKind))

    # Iteration control
    repetitions: int = DEFAULT_REPETITIONS
    warmup: int = 0
    timeout: float = DEFAULT_TIMEOUT  # Per-trial timeout in seconds
    timing_mode: TimingMode = TimingMode.EXCLUDE_RESOLVE

    # Execution strategy
    alternate: bool | None = None  # None = auto (True if multi-strategy)
    workers: int = 1  # > 1 runs (size class, ordering) groups in parallel

    # Reporting
    noise_threshold: float = DEFAULT_NOISE_THRESHOLD
    results_dir: Path | None = None  # None = keep results in memory only

    # CLI provenance
    cli_args: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.bench_id:
            self.bench_id = f"bench_{time.strftime('%Y%m%d_%H%M%S')}"

    @property
    def total_repetitions(self) -> int:
        """Trials per combination (warmup + measured)."""
        return self.warmup + self.repetitions

    @property
    def should_alternate(self) -> bool:
        """Whether to alternate strategies per repetition."""
        if self.alternate is not None:
            return self.alternate
        return len(self.strategies) > 1

    @property
    def output_dir(self) -> Path | None:
        """The output directory for this benchmark run."""
        if self.results_dir is None:
            return None
        return self.results_dir / self.bench_id

    def to_meta_dict(self) -> dict[str, Any]:
        """Settings recorded in bench_meta.json."""
        return {
            "count_column": self.count_column,
            "strategies": [s.value for s in self.strategies],
            "orderings": [o.value for o in self.orderings],
            "repetitions": self.repetitions,
            "warmup": self.warmup,
            "timeout": self.timeout,
            "timing_mode": self.timing_mode.value,
            "alternate": self.should_alternate,
            "workers": self.workers,
            "noise_threshold": self.noise_threshold,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: BenchConfig) -> list[ValidationError]:
    """Validate a benchmark configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not config.datasets:
        errors.append(
            ValidationError(
                field="datasets",
                message=(
                    "No datasets defined. Use --profile or --dataset to define at least one."
                ),
            )
        )

    if not config.count_column:
        errors.append(
            ValidationError(
                field="count_column",
                message="No count column set. Use --count-column or 'count_column' in the profile.",
            )
        )

    # Samples are keyed by size class, so two datasets in one class
    # would be pooled into the same statistics.
    seen_classes: dict[SizeClass, str] = {}
    for name, ds in config.datasets.items():
        if not name or not name.strip():
            errors.append(ValidationError(field="datasets", message="Dataset names must be non-empty."))
        if ds.size_class in seen_classes:
            errors.append(
                ValidationError(
                    field=f"datasets.{name}.size_class",
                    message=(
                        f"Datasets '{seen_classes[ds.size_class]}' and '{name}' share size "
                        f"class '{ds.size_class.value}'; use one dataset per size class."
                    ),
                )
            )
        else:
            seen_classes[ds.size_class] = name

        if not ds.top_column or not ds.second_column:
            errors.append(
                ValidationError(
                    field=f"datasets.{name}",
                    message=f"Dataset '{name}' needs both top_column and second_column.",
                )
            )
        elif ds.top_column == ds.second_column:
            errors.append(
                ValidationError(
                    field=f"datasets.{name}",
                    message=(
                        f"Dataset '{name}' uses '{ds.top_column}' as both grouping columns."
                    ),
                )
            )

        if not ds.location.path:
            errors.append(
                ValidationError(
                    field=f"datasets.{name}.location",
                    message=f"Dataset '{name}' has no location.",
                )
            )
        elif not ds.location.is_remote and not Path(ds.location.path).exists():
            # Missing data is recorded per trial as a resolution failure.
            errors.append(
                ValidationError(
                    field=f"datasets.{name}.location",
                    message=f"Location for dataset '{name}' does not exist: {ds.location.path}",
                    severity="warning",
                )
            )

    if not config.strategies:
        errors.append(ValidationError(field="strategies", message="No read strategies selected."))
    if not config.orderings:
        errors.append(ValidationError(field="orderings", message="No grouping orders selected."))

    if config.repetitions < 1:
        errors.append(
            ValidationError(
                field="repetitions",
                message=f"Need at least 1 repetition (got {config.repetitions}).",
            )
        )
    elif config.repetitions < 3:
        errors.append(
            ValidationError(
                field="repetitions",
                message=(
                    f"{config.repetitions} repetition(s) give no meaningful spread; "
                    f"8-10 are recommended."
                ),
                severity="warning",
            )
        )

    if config.warmup < 0:
        errors.append(
            ValidationError(
                field="warmup",
                message=f"Warmup repetitions cannot be negative (got {config.warmup}).",
            )
        )

    if config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout}).",
            )
        )

    if config.workers < 1:
        errors.append(
            ValidationError(
                field="workers",
                message=f"Workers must be >= 1 (got {config.workers}).",
            )
        )

    if not 0 <= config.noise_threshold < 1:
        errors.append(
            ValidationError(
                field="noise_threshold",
                message=(
                    f"Noise threshold is a fraction in [0, 1) (got {config.noise_threshold})."
                ),
            )
        )

    return errors


# ---------------------------------------------------------------------------
# Enum parsing helpers
# ---------------------------------------------------------------------------


def parse_strategy(value: str) -> ReadStrategy:
    """Parse a strategy name, accepting dashes or underscores."""
    try:
        return ReadStrategy(value.strip().lower().replace("-", "_"))
    except ValueError:
        valid = ", ".join(s.value for s in ReadStrategy)
        raise ValueError(f"Unknown read strategy '{value}'. Valid: {valid}") from None


def parse_ordering(value: str) -> OrderingKind:
    """Parse a grouping order name, accepting dashes or underscores."""
    try:
        return OrderingKind(value.strip().lower().replace("-", "_"))
    except ValueError:
        valid = ", ".join(o.value for o in OrderingKind)
        raise ValueError(f"Unknown grouping order '{value}'. Valid: {valid}") from None


def parse_size_class(value: str) -> SizeClass:
    try:
        return SizeClass(value.strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in SizeClass)
        raise ValueError(f"Unknown size class '{value}'. Valid: {valid}") from None


def parse_timing_mode(value: str) -> TimingMode:
    try:
        return TimingMode(value.strip().lower().replace("-", "_"))
    except ValueError:
        valid = ", ".join(m.value for m in TimingMode)
        raise ValueError(f"Unknown timing mode '{value}'. Valid: {valid}") from None


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a benchmark profile from a YAML file.

    Profile format::

        name: "read strategies on events"
        count_column: user_id
        repetitions: 8
        timeout: 1800
        timing_mode: exclude_resolve
        noise_threshold: 0.05
        strategies: [eager, deferred, deferred_fallible]
        orderings: [top_second, second_top]

        datasets:
          small:
            location: data/events_small.parquet
            size_class: small
            top_column: country
            second_column: device
          large:
            location: /mnt/lake/events
            size_class: large
            top_column: country
            second_column: device

    Returns:
        The parsed YAML as a dict.
    """
    import yaml

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text())

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def _dataset_from_mapping(name: str, data: dict[str, Any]) -> DatasetDef:
    for key in ("location", "size_class"):
        if key not in data:
            raise ValueError(f"Dataset '{name}' is missing '{key}'.")
    return DatasetDef(
        name=name,
        location=DatasetLocation(str(data["location"])),
        size_class=parse_size_class(str(data["size_class"])),
        top_column=str(data.get("top_column", "")),
        second_column=str(data.get("second_column", "")),
        description=data.get("description", ""),
    )


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> BenchConfig:
    """Build a BenchConfig from a parsed YAML profile.

    CLI overrides take precedence over profile values.  Keys match
    BenchConfig field names; ``None`` means "not given on the CLI".
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}

    def _pick(key: str, default: Any) -> Any:
        if key in cli:
            if key in profile_data and profile_data[key] != cli[key]:
                log.debug("CLI overrides profile %s: %r -> %r", key, profile_data[key], cli[key])
            return cli[key]
        return profile_data.get(key, default)

    config = BenchConfig(
        name=_pick("name", ""),
        description=profile_data.get("description", ""),
        count_column=_pick("count_column", ""),
        repetitions=int(_pick("repetitions", DEFAULT_REPETITIONS)),
        warmup=int(_pick("warmup", 0)),
        timeout=float(_pick("timeout", DEFAULT_TIMEOUT)),
        workers=int(_pick("workers", 1)),
        noise_threshold=float(_pick("noise_threshold", DEFAULT_NOISE_THRESHOLD)),
        alternate=_pick("alternate", None),
    )

    timing_mode = _pick("timing_mode", None)
    if timing_mode is not None:
        config.timing_mode = (
            timing_mode if isinstance(timing_mode, TimingMode) else parse_timing_mode(timing_mode)
        )

    strategies = _pick("strategies", None)
    if strategies:
        config.strategies = [
            s if isinstance(s, ReadStrategy) else parse_strategy(s) for s in strategies
        ]
    orderings = _pick("orderings", None)
    if orderings:
        config.orderings = [
            o if isinstance(o, OrderingKind) else parse_ordering(o) for o in orderings
        ]

    datasets_data = profile_data.get("datasets", {}) or {}
    if not isinstance(datasets_data, dict):
        raise ValueError("Profile 'datasets' must be a mapping of dataset_name -> definition")

    for name, ds_data in datasets_data.items():
        if not isinstance(ds_data, dict):
            raise ValueError(f"Dataset '{name}' must be a mapping, got {type(ds_data).__name__}")
        config.datasets[name] = _dataset_from_mapping(name, ds_data)

    if cli.get("results_dir"):
        config.results_dir = Path(cli["results_dir"])
    elif profile_data.get("results_dir"):
        config.results_dir = Path(profile_data["results_dir"])

    return config


# ---------------------------------------------------------------------------
# Inline dataset parsing
# ---------------------------------------------------------------------------

_INLINE_KEYS = {
    "location": "location",
    "path": "location",
    "size_class": "size_class",
    "size": "size_class",
    "top": "top_column",
    "top_column": "top_column",
    "second": "second_column",
    "second_column": "second_column",
    "description": "description",
}


def parse_inline_dataset(spec: str) -> DatasetDef:
    """Parse an inline dataset specification from the CLI.

    Format: ``"name:key=value,key=value,..."``

    Supported keys: location (or path), size_class (or size),
    top (or top_column), second (or second_column), description.

    Example::

        "large:location=/mnt/lake/events,size=large,top=country,second=device"
    """
    if ":" not in spec:
        raise ValueError(f"Invalid dataset spec: '{spec}'. Expected format: 'name:key=value,...'")

    name, rest = spec.split(":", 1)
    name = name.strip()
    if not name:
        raise ValueError("Dataset name cannot be empty.")

    values: dict[str, str] = {}
    for pair in _split_pairs(rest.strip()):
        if "=" not in pair:
            raise ValueError(f"Invalid key=value pair in dataset '{name}': '{pair}'")
        key, value = pair.split("=", 1)
        key = key.strip()
        if key not in _INLINE_KEYS:
            raise ValueError(
                f"Unknown dataset key '{key}' in dataset '{name}'. "
                f"Valid keys: location, size_class, top, second, description"
            )
        values[_INLINE_KEYS[key]] = value.strip()

    return _dataset_from_mapping(name, values)


def _split_pairs(text: str) -> list[str]:
    """Split key=value pairs on commas.

    Segments without ``=`` are rejoined with the preceding segment
    (they belong to a value that contained a comma).
    """
    pairs: list[str] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" in part or not pairs:
            pairs.append(part)
        else:
            pairs[-1] += "," + part
    return pairs
