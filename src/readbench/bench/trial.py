"""A single timed execution of one (strategy, grouping order) pair.

The trial is the failure boundary of the benchmark: resolution errors,
pipeline errors, timeouts, and unexpected engine exceptions all come
back as a failed ``TrialSample``.  Nothing above this module sees an
exception from a trial.

Timed window:

- ``EXCLUDE_RESOLVE`` starts the clock after ``resolve()`` returns.
- ``INCLUDE_RESOLVE`` starts it just before ``resolve()``.

Either way it stops once the pipeline scalar is a concrete Python int.
Handle construction is never inside the window; for the eager strategy
that is where resolution happens.  The trial timeout is one budget that
covers construction and the measured run together.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from readbench.bench.engine import Resolver, open_partitioned_dataset
from readbench.bench.errors import PipelineError, ResolutionError, TrialTimeoutError
from readbench.bench.handle import DatasetHandle, make_handle
from readbench.bench.pipeline import GroupingOrder, run_pipeline
from readbench.bench.results import (
    DatasetLocation,
    ErrorKind,
    ReadStrategy,
    SizeClass,
    TimingMode,
    TrialSample,
)
from readbench.bench.timing import Clock, default_clock, run_with_timeout
from readbench.logging import get_logger

log = get_logger("trial")


@dataclass
class _Outcome:
    duration_ns: int
    result: int | None = None
    error_kind: ErrorKind | None = None
    error_message: str = ""


def _measure(
    handle: DatasetHandle,
    ordering: GroupingOrder,
    count_column: str,
    timing_mode: TimingMode,
    clock: Clock,
) -> _Outcome:
    start = clock()
    try:
        if handle.fallible:
            resolution = handle.resolve()
            if not resolution.ok:
                return _Outcome(
                    duration_ns=clock() - start,
                    error_kind=ErrorKind.RESOLUTION,
                    error_message=str(resolution.error),
                )
            resolved = resolution.unwrap()
        else:
            resolved = handle.resolve()

        if timing_mode is TimingMode.EXCLUDE_RESOLVE:
            start = clock()

        value = run_pipeline(resolved, ordering, count_column)
    except ResolutionError as exc:
        return _Outcome(clock() - start, error_kind=ErrorKind.RESOLUTION, error_message=str(exc))
    except PipelineError as exc:
        return _Outcome(clock() - start, error_kind=ErrorKind.PIPELINE, error_message=str(exc))
    except Exception as exc:  # noqa: BLE001
        log.debug("Unexpected engine failure", exc_info=True)
        return _Outcome(
            clock() - start,
            error_kind=ErrorKind.PIPELINE,
            error_message=f"{type(exc).__name__}: {exc}",
        )

    return _Outcome(duration_ns=clock() - start, result=value)


def execute_trial(
    *,
    strategy: ReadStrategy,
    location: DatasetLocation,
    ordering: GroupingOrder,
    size_class: SizeClass,
    count_column: str,
    timing_mode: TimingMode = TimingMode.EXCLUDE_RESOLVE,
    timeout: float = 600.0,
    resolver: Resolver = open_partitioned_dataset,
    clock: Clock = default_clock,
    dataset: str = "",
    repetition: int = 1,
    warmup: bool = False,
    stragglers: list[threading.Thread] | None = None,
) -> TrialSample:
    """Execute one trial with a freshly constructed handle.

    *timeout* is a single wall-clock budget shared by handle
    construction and the measured run.  A worker thread abandoned on
    timeout is appended to *stragglers* when given.

    Returns:
        A TrialSample, successful or not.  Never raises for failures
        of the dataset, the pipeline, or the engine.
    """
    deadline = time.monotonic() + timeout

    def _sample(duration_ns: int, **kwargs: object) -> TrialSample:
        return TrialSample(
            strategy=strategy,
            ordering=ordering.kind,
            size_class=size_class,
            duration_ns=max(duration_ns, 0),
            dataset=dataset,
            repetition=repetition,
            warmup=warmup,
            **kwargs,  # type: ignore[arg-type]
        )

    def _timeout_sample(elapsed_ns: int, worker: threading.Thread | None) -> TrialSample:
        if worker is not None and stragglers is not None:
            stragglers.append(worker)
        return _sample(
            elapsed_ns,
            succeeded=False,
            error_kind=ErrorKind.TIMEOUT,
            error_message=str(TrialTimeoutError(timeout)),
        )

    # Construction is untimed, but still bounded: an eager handle that
    # hangs while resolving must not stall the run.
    built = run_with_timeout(
        lambda: make_handle(strategy, location, resolver),
        timeout=timeout,
        clock=clock,
        name="readbench-resolve",
    )
    if built.timed_out:
        return _timeout_sample(built.elapsed_ns, built.worker)
    if built.error is not None:
        kind = (
            ErrorKind.RESOLUTION if isinstance(built.error, ResolutionError) else ErrorKind.PIPELINE
        )
        return _sample(
            built.elapsed_ns,
            succeeded=False,
            error_kind=kind,
            error_message=str(built.error),
        )
    handle: DatasetHandle = built.value

    remaining = deadline - time.monotonic()
    if remaining <= 0:
        return _timeout_sample(built.elapsed_ns, None)

    timed = run_with_timeout(
        lambda: _measure(handle, ordering, count_column, timing_mode, clock),
        timeout=remaining,
        clock=clock,
    )
    if timed.timed_out:
        return _timeout_sample(built.elapsed_ns + timed.elapsed_ns, timed.worker)
    if timed.error is not None:
        return _sample(
            timed.elapsed_ns,
            succeeded=False,
            error_kind=ErrorKind.PIPELINE,
            error_message=f"{type(timed.error).__name__}: {timed.error}",
        )

    outcome: _Outcome = timed.value
    if outcome.error_kind is not None:
        log.debug(
            "Trial %s/%s failed: %s",
            strategy.value,
            ordering.kind.value,
            outcome.error_message,
        )
        return _sample(
            outcome.duration_ns,
            succeeded=False,
            error_kind=outcome.error_kind,
            error_message=outcome.error_message,
        )
    return _sample(outcome.duration_ns, succeeded=True, result=outcome.result)
