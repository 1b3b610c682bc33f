"""Dataset handles: the three read strategies under comparison.

Every handle wraps a ``DatasetLocation`` and a resolver (normally
``open_partitioned_dataset``).  The strategies differ only in *when*
the resolver runs and *how* its failure surfaces:

- ``EagerHandle`` resolves inside the constructor.  A failure raises
  from the constructor; ``resolve()`` just hands back the held value.
- ``DeferredHandle`` resolves on the first ``resolve()`` call and
  memoizes the outcome.  A failure raises, then re-raises from the cache.
- ``DeferredFallibleHandle`` memoizes like ``DeferredHandle`` but never
  raises from ``resolve()``: it returns a ``Resolution`` that the caller
  must check before building a pipeline on it.

The resolver is called at most once per handle.  Calling it again would
charge the resolution cost to a later measurement.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from readbench.bench.engine import ResolvedDataset, Resolver, open_partitioned_dataset
from readbench.bench.errors import ResolutionError
from readbench.bench.results import DatasetLocation, ReadStrategy

log = logging.getLogger("readbench")


# ---------------------------------------------------------------------------
# Resolution outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resolution:
    """Tagged success/failure value held by the memoizing handles."""

    value: ResolvedDataset | None = None
    error: ResolutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ResolvedDataset:
        """Return the resolved dataset or raise the captured error."""
        if self.error is not None:
            raise self.error
        assert self.value is not None
        return self.value

    @classmethod
    def success(cls, value: ResolvedDataset) -> Resolution:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ResolutionError) -> Resolution:
        return cls(error=error)


# ---------------------------------------------------------------------------
# Handles
# ---------------------------------------------------------------------------


class DatasetHandle:
    """Base class: a reference to a dataset plus a resolution policy."""

    strategy: ReadStrategy
    fallible = False

    def __init__(
        self,
        location: DatasetLocation,
        resolver: Resolver = open_partitioned_dataset,
    ) -> None:
        self.location = location
        self._resolver = resolver
        self._outcome: Resolution | None = None
        self._lock = threading.Lock()

    @property
    def resolved(self) -> bool:
        """True once the resolver has run (successfully or not)."""
        return self._outcome is not None

    def _attempt(self) -> Resolution:
        """Run the resolver once, capturing any failure as a value."""
        log.debug("Resolving %s (%s)", self.location, self.strategy.value)
        try:
            return Resolution.success(self._resolver(self.location))
        except ResolutionError as exc:
            return Resolution.failure(exc)
        except Exception as exc:  # noqa: BLE001
            return Resolution.failure(
                ResolutionError(self.location.path, f"{type(exc).__name__}: {exc}")
            )

    def _outcome_once(self) -> Resolution:
        with self._lock:
            if self._outcome is None:
                self._outcome = self._attempt()
            return self._outcome

    def resolve(self) -> ResolvedDataset | Resolution:
        """Return the resolved dataset.

        Eager and deferred handles return a ``ResolvedDataset`` and raise
        ``ResolutionError`` on failure.  Fallible handles (``fallible`` is
        True) return a ``Resolution`` instead and never raise.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "unresolved"
        return f"<{type(self).__name__} {self.location} {state}>"


class EagerHandle(DatasetHandle):
    """Resolves at construction time."""

    strategy = ReadStrategy.EAGER

    def __init__(
        self,
        location: DatasetLocation,
        resolver: Resolver = open_partitioned_dataset,
    ) -> None:
        super().__init__(location, resolver)
        self._outcome_once().unwrap()

    def resolve(self) -> ResolvedDataset:
        return self._outcome_once().unwrap()


class DeferredHandle(DatasetHandle):
    """Resolves on first use and memoizes the outcome."""

    strategy = ReadStrategy.DEFERRED

    def resolve(self) -> ResolvedDataset:
        return self._outcome_once().unwrap()


class DeferredFallibleHandle(DatasetHandle):
    """Resolves on first use, memoizes, and reports failure as a value."""

    strategy = ReadStrategy.DEFERRED_FALLIBLE
    fallible = True

    def resolve(self) -> Resolution:
        return self._outcome_once()


_HANDLE_TYPES: dict[ReadStrategy, type[DatasetHandle]] = {
    ReadStrategy.EAGER: EagerHandle,
    ReadStrategy.DEFERRED: DeferredHandle,
    ReadStrategy.DEFERRED_FALLIBLE: DeferredFallibleHandle,
}


def make_handle(
    strategy: ReadStrategy,
    location: DatasetLocation,
    resolver: Resolver = open_partitioned_dataset,
) -> DatasetHandle:
    """Construct a fresh handle for *strategy*.

    Raises:
        ResolutionError: For ``EAGER`` when resolution fails.
    """
    return _HANDLE_TYPES[strategy](location, resolver)
