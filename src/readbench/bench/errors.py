"""Exception types raised inside a benchmark trial.

All of them stop at the trial boundary: the trial converts them into a
failed ``TrialSample`` tagged with the matching ``ErrorKind``.
"""

from __future__ import annotations


class BenchError(Exception):
    """Base class for failures observed while running a trial."""


class ResolutionError(BenchError):
    """The dataset location is unreachable, malformed, or has no usable schema."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"cannot resolve dataset at {location}: {reason}")
        self.location = location
        self.reason = reason


class PipelineError(BenchError):
    """The aggregation pipeline could not produce a scalar result."""


class TrialTimeoutError(BenchError):
    """A trial exceeded its wall-clock budget."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"trial exceeded timeout of {timeout:g}s")
        self.timeout = timeout
