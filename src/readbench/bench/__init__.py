"""Benchmarking subsystem for readbench.

Provides the read-strategy handles, the fixed aggregation pipeline, the
trial/runner machinery that times them repeatedly, and the statistics
and comparison layer that turns raw samples into verdicts.
"""
