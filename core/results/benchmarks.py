#core/results/benchmarks.py

from __future__ import annotations

from typing import List, Sequence

from core.models import Bar
from core.results.metrics import drawdown_from_peak
from core.results.models import BuyAndHoldBaseline, EquityPoint


def compute_buy_and_hold_baseline(
    *,
    initial_capital: float,
    bars: Sequence[Bar],
) -> BuyAndHoldBaseline:
    """
    Buy&Hold baseline:
      - invest ALL capital at bars[0].close
      - equity_i = initial_capital * close_i / close_0
      - no fees, no slippage; drawdown against its own running peak

    An empty series, or a first close <= 0, gives an empty baseline.
    """
    if not bars:
        return BuyAndHoldBaseline()

    start_price = float(bars[0].close)
    if start_price <= 0.0:
        return BuyAndHoldBaseline()

    initial = float(initial_capital)
    points: List[EquityPoint] = []
    peak = float("-inf")

    for bar in bars:
        equity = initial * (float(bar.close) / start_price)
        peak = max(peak, equity)
        points.append(
            EquityPoint(
                timestamp=bar.timestamp,
                equity=equity,
                drawdown=drawdown_from_peak(peak, equity),
            )
        )

    final_equity = points[-1].equity
    net_profit = final_equity - initial
    total_return = net_profit / initial if initial != 0 else 0.0

    return BuyAndHoldBaseline(
        equity=points,
        net_profit=net_profit,
        total_return=total_return,
    )
