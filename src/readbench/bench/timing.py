"""Timing capture for benchmark trials.

Trials run in-process, so a stuck engine call cannot be killed the way
a subprocess can.  ``run_with_timeout`` runs the work on a daemon
thread and stops waiting once the budget is spent.  The abandoned thread
is handed back on the result (``worker``) so the caller can hold off
further work until it finishes; its own result is discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

log = logging.getLogger("readbench")

Clock = Callable[[], int]

default_clock: Clock = time.perf_counter_ns


# ---------------------------------------------------------------------------
# TimedResult
# ---------------------------------------------------------------------------


@dataclass
class TimedResult:
    """Result of a call executed under a wall-clock budget."""

    value: Any
    elapsed_ns: int
    error: Exception | None = None
    timed_out: bool = False
    worker: threading.Thread | None = None  # still running when timed out

    @property
    def elapsed_s(self) -> float:
        return self.elapsed_ns / 1e9


# ---------------------------------------------------------------------------
# Core timing implementation
# ---------------------------------------------------------------------------


def run_with_timeout(
    fn: Callable[[], Any],
    *,
    timeout: float,
    clock: Clock = default_clock,
    name: str = "readbench-trial",
) -> TimedResult:
    """Call *fn* on a worker thread and wait at most *timeout* seconds.

    Exceptions raised by *fn* are captured on the result, never raised.

    Args:
        fn: Zero-argument callable to execute.
        timeout: Maximum time to wait, in seconds.
        clock: Nanosecond clock used for ``elapsed_ns``.
        name: Worker thread name (shows up in thread dumps).
    """
    box: dict[str, Any] = {}

    def _target() -> None:
        try:
            box["value"] = fn()
        except Exception as exc:  # noqa: BLE001
            box["error"] = exc

    start = clock()
    worker = threading.Thread(target=_target, name=name, daemon=True)
    worker.start()
    worker.join(timeout)
    elapsed = clock() - start

    if worker.is_alive():
        log.warning("%s still running after %.1fs, abandoning it", name, timeout)
        return TimedResult(value=None, elapsed_ns=elapsed, timed_out=True, worker=worker)

    return TimedResult(
        value=box.get("value"),
        elapsed_ns=elapsed,
        error=box.get("error"),
    )


def wait_for_workers(workers: list[threading.Thread], grace: float) -> list[threading.Thread]:
    """Join abandoned *workers* for at most *grace* seconds in total.

    Returns:
        The workers that are still running afterwards.
    """
    deadline = time.monotonic() + grace
    for worker in workers:
        worker.join(max(deadline - time.monotonic(), 0.0))
    return [w for w in workers if w.is_alive()]
