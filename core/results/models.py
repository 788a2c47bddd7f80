# core/results/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from core.models import ClosedTrade, Position


@dataclass(frozen=True)
class EquityPoint:
    """
    Single point on the equity curve.

    drawdown is a fraction of the running peak: (peak - equity) / peak.
    """
    timestamp: datetime
    equity: float
    drawdown: float = 0.0


@dataclass
class BuyAndHoldBaseline:
    """Fee-free buy & hold over the same bars, for comparison."""
    equity: List[EquityPoint] = field(default_factory=list)
    net_profit: float = 0.0
    total_return: float = 0.0   # (final - initial) / initial


@dataclass
class BacktestResult:
    """
    Summary of a single backtest run. Money is in quote currency,
    rates are fractions (0.001 = 0.1%).
    """
    run_id: str
    symbol: str
    started_at: datetime
    finished_at: datetime

    initial_capital: float

    net_profit: float
    gross_profit: float
    total_fees: float

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float

    max_drawdown: float
    sharpe_ratio: float

    positions: List[Position]
    trades: List[ClosedTrade]
    equity: List[EquityPoint]

    baseline_buy_and_hold: BuyAndHoldBaseline
    outperformance_vs_buy_and_hold: float

    metrics: Dict[str, float] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_equity(self) -> float:
        return self.equity[-1].equity if self.equity else self.initial_capital
