# tests/test_benchmarks.py
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from core.models import Bar
from core.results.benchmarks import compute_buy_and_hold_baseline


def make_bars(closes):
    start = datetime(2022, 1, 1)
    return [Bar(timestamp=start + timedelta(days=i), close=c) for i, c in enumerate(closes)]


def test_buy_and_hold_total_return():
    bars = make_bars([100.0, 101.0, 102.0, 103.0, 104.0, 105.0])

    baseline = compute_buy_and_hold_baseline(initial_capital=10_000.0, bars=bars)

    assert baseline.total_return == pytest.approx(105.0 / 100.0 - 1.0)
    assert baseline.net_profit == pytest.approx(500.0)
    assert len(baseline.equity) == len(bars)
    assert baseline.equity[0].equity == pytest.approx(10_000.0)
    assert baseline.equity[-1].equity == pytest.approx(10_500.0)
    assert [p.timestamp for p in baseline.equity] == [b.timestamp for b in bars]


def test_buy_and_hold_tracks_its_own_drawdown():
    bars = make_bars([100.0, 120.0, 90.0])

    baseline = compute_buy_and_hold_baseline(initial_capital=1000.0, bars=bars)

    # first point and the new high at 120 are 0, never negative
    assert [p.drawdown for p in baseline.equity] == pytest.approx([0.0, 0.0, 0.25])
    assert baseline.total_return == pytest.approx(-0.1)


@pytest.mark.parametrize("closes", [[], [0.0, 10.0], [-1.0, 10.0]])
def test_buy_and_hold_degenerate_series_is_empty(closes):
    baseline = compute_buy_and_hold_baseline(initial_capital=1000.0, bars=make_bars(closes))

    assert baseline.equity == []
    assert baseline.net_profit == 0.0
    assert baseline.total_return == 0.0
