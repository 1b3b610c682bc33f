"""readbench — measure how dataset read strategies affect aggregation latency."""

__version__ = "0.1.0"
