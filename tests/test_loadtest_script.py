import argparse

import pytest

from scripts.loadtest_basic import _positive_int, _render, summarize


def test_summarize_counts_admitted_throttled_and_errors() -> None:
    result = summarize([200, 200, 429, 429, 429, 500], [0.01, 0.02, 0.01, 0.01, 0.03, 0.2], elapsed=2.0)

    assert result["total_requests"] == 6
    assert result["admitted"] == 2
    assert result["throttled"] == 3
    assert result["errors"] == 1
    assert result["admit_rate"] == pytest.approx(100 * 2 / 6)
    assert result["rps"] == pytest.approx(3.0)
    assert result["latency_p99_ms"] == pytest.approx(30.0)


def test_summarize_empty_run() -> None:
    result = summarize([], [], elapsed=0.0)

    assert result["total_requests"] == 0
    assert result["admit_rate"] == 0.0
    assert result["rps"] == 0.0
    assert result["latency_avg_ms"] == 0.0


def test_render_prints_counts_and_latencies() -> None:
    report = _render(summarize([200, 429], [0.01, 0.02], elapsed=1.0))

    lines = report.splitlines()
    assert lines[:4] == ["total_requests=2", "admitted=1", "throttled=1", "errors=0"]
    assert "admit_rate=50.00%" in lines
    assert "throughput_rps=2.00" in lines


def test_positive_int_rejects_zero() -> None:
    assert _positive_int("3") == 3
    with pytest.raises(argparse.ArgumentTypeError):
        _positive_int("0")
