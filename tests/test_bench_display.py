"""Tests for readbench.bench.display — terminal formatting."""

from __future__ import annotations

import unittest

from readbench.bench.compare import compare
from readbench.bench.display import (
    _format_pct,
    _format_time,
    format_bench_show,
    format_verdict,
    format_verdicts,
)
from readbench.bench.results import ErrorKind, ReadStrategy
from readbench.bench.stats import summarize

from bench_test_helpers import make_meta, make_sample, make_samples, scenario_samples


class TestFormatTime(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(_format_time(500_000), "500µs")
        self.assertEqual(_format_time(12_340_000), "12.34ms")
        self.assertEqual(_format_time(2_500_000_000), "2.50s")
        self.assertEqual(_format_time(125_000_000_000), "2m5s")

    def test_none(self) -> None:
        self.assertEqual(_format_time(None), "N/A")


class TestFormatPct(unittest.TestCase):
    def test_signs(self) -> None:
        self.assertEqual(_format_pct(30.0), "+30.0%")
        self.assertEqual(_format_pct(-4.25), "-4.2%")
        self.assertEqual(_format_pct(None), "N/A")


class TestFormatVerdicts(unittest.TestCase):
    def setUp(self) -> None:
        self.verdicts = compare(summarize(scenario_samples()))

    def test_winner_and_tie(self) -> None:
        text = format_verdicts(self.verdicts)
        self.assertIn("small / top_second", text)
        self.assertIn("Winner: deferred", text)
        self.assertIn("Winner: tie", text)
        self.assertIn("Overall:", text)

    def test_improvement_shown(self) -> None:
        self.assertIn("+30.0%", format_verdict(self.verdicts[0]))

    def test_failures_shown_next_to_mean(self) -> None:
        samples = make_samples(ReadStrategy.EAGER, [100_000, 110_000])
        samples.append(
            make_sample(ReadStrategy.EAGER, 1, succeeded=False, error_kind=ErrorKind.PIPELINE)
        )
        samples += make_samples(ReadStrategy.DEFERRED, [50_000, 60_000, 55_000])
        text = format_verdict(compare(summarize(samples))[0])
        self.assertIn("1/3 failed (33%)", text)

    def test_no_winner(self) -> None:
        samples = [make_sample(s, 1, succeeded=False) for s in ReadStrategy]
        text = format_verdict(compare(summarize(samples))[0])
        self.assertIn("Winner: n/a", text)
        self.assertIn("N/A", text)

    def test_result_mismatch_warning(self) -> None:
        samples = make_samples(ReadStrategy.EAGER, [100, 100], result=3)
        samples += make_samples(ReadStrategy.DEFERRED, [100, 100], result=4)
        self.assertIn("WARNING", format_verdict(compare(summarize(samples))[0]))

    def test_empty(self) -> None:
        self.assertEqual(format_verdicts([]), "No comparable results.")


class TestFormatBenchShow(unittest.TestCase):
    def test_header_and_verdicts(self) -> None:
        text = format_bench_show(make_meta(), scenario_samples())
        self.assertIn("Test Benchmark", text)
        self.assertIn("Dataset 'small' [small]: mem://events", text)
        self.assertIn("Timing mode: exclude_resolve", text)
        self.assertIn("Winner: deferred", text)

    def test_gaps_listed(self) -> None:
        samples = make_samples(ReadStrategy.DEFERRED, [100, 200])
        samples += [
            make_sample(ReadStrategy.EAGER, 1, succeeded=False, error_kind=ErrorKind.TIMEOUT)
        ]
        text = format_bench_show(make_meta(), samples)
        self.assertIn("Reporting gaps", text)
        self.assertIn("1 timed out", text)

    def test_threshold_from_meta(self) -> None:
        # deferred leads second_top by 1%; a 0.5% threshold makes it a win.
        text = format_bench_show(make_meta(noise_threshold=0.005), scenario_samples())
        self.assertNotIn("Winner: tie", text)


if __name__ == "__main__":
    unittest.main()
