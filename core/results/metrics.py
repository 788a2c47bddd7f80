# core/results/metrics.py
from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional, Sequence

from core.models import ClosedTrade

from .models import BacktestResult, EquityPoint

MetricFunc = Callable[[BacktestResult], float]

TRADING_DAYS_PER_YEAR = 252


class MetricRegistry:
    """
    Name -> metric function mapping.

    Each metric function:
      (BacktestResult) -> float
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, MetricFunc] = {}

    def register(self, name: str, func: MetricFunc) -> None:
        if name in self._metrics:
            raise ValueError(f"Metric '{name}' already registered")
        self._metrics[name] = func

    def compute(self, name: str, result: BacktestResult) -> float:
        return self._metrics[name](result)

    def compute_all(
        self,
        result: BacktestResult,
        names: Optional[List[str]] = None,
    ) -> Dict[str, float]:
        metric_names = names or list(self._metrics.keys())
        unknown = [n for n in metric_names if n not in self._metrics]
        if unknown:
            raise KeyError(f"Unknown metrics requested: {unknown}")
        return {n: self._metrics[n](result) for n in metric_names}

    def list_metrics(self) -> List[str]:
        return list(self._metrics.keys())


# ----------------------------------------------------------------------
# Equity-curve helpers (also used by the engine while it runs)
# ----------------------------------------------------------------------


def drawdown_from_peak(peak: float, equity: float) -> float:
    """Fractional drawdown below peak; 0 when the peak is not positive."""
    if peak <= 0:
        return 0.0
    return (peak - equity) / peak


def max_drawdown(equity_curve: Sequence[EquityPoint]) -> float:
    if not equity_curve:
        return 0.0
    return max(p.drawdown for p in equity_curve)


def step_returns(values: Sequence[float]) -> List[float]:
    # a zero base has no meaningful return; count it as flat
    return [
        (cur - prev) / prev if prev != 0 else 0.0
        for prev, cur in zip(values, values[1:])
    ]


def sharpe_ratio(values: Sequence[float], periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """
    Annualised Sharpe ratio of per-step equity returns (risk-free rate 0,
    population standard deviation).

    Returns 0.0 for fewer than two points or a zero mean return. A non-zero
    mean with zero volatility gives a signed infinity.
    """
    if len(values) < 2:
        return 0.0

    returns = step_returns(values)
    mean = sum(returns) / len(returns)
    if mean == 0:
        return 0.0

    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    std = math.sqrt(variance)
    if std == 0:
        return math.copysign(math.inf, mean)
    return mean * math.sqrt(periods_per_year) / std


# ----------------------------------------------------------------------
# Concrete metric implementations
# ----------------------------------------------------------------------


def m_net_profit(res: BacktestResult) -> float:
    return res.net_profit


def m_total_return_pct(res: BacktestResult) -> float:
    if res.initial_capital <= 0:
        return 0.0
    return (res.final_equity / res.initial_capital - 1.0) * 100.0


def m_max_drawdown_pct(res: BacktestResult) -> float:
    return max_drawdown(res.equity) * 100.0


def m_sharpe_ratio(res: BacktestResult) -> float:
    return res.sharpe_ratio


def m_n_trades(res: BacktestResult) -> float:
    return float(len(res.trades))


def m_win_rate_pct(res: BacktestResult) -> float:
    return res.win_rate * 100.0


def m_avg_trade_pnl(res: BacktestResult) -> float:
    trades: List[ClosedTrade] = res.trades
    if not trades:
        return 0.0
    return sum(t.realized_pnl for t in trades) / len(trades)


def m_profit_factor(res: BacktestResult) -> float:
    trades: List[ClosedTrade] = res.trades
    if not trades:
        return 0.0

    gross_profit = sum(t.realized_pnl for t in trades if t.realized_pnl > 0)
    gross_loss = sum(t.realized_pnl for t in trades if t.realized_pnl < 0)  # negative

    if gross_loss >= 0:
        return float("inf")
    return gross_profit / abs(gross_loss)


def m_outperformance(res: BacktestResult) -> float:
    return res.outperformance_vs_buy_and_hold


# ----------------------------------------------------------------------
# Helper to build default registry
# ----------------------------------------------------------------------


def create_default_metric_registry() -> MetricRegistry:
    reg = MetricRegistry()
    reg.register("net_profit", m_net_profit)
    reg.register("total_return_pct", m_total_return_pct)
    reg.register("max_drawdown_pct", m_max_drawdown_pct)
    reg.register("sharpe_ratio", m_sharpe_ratio)
    reg.register("n_trades", m_n_trades)
    reg.register("win_rate_pct", m_win_rate_pct)
    reg.register("avg_trade_pnl", m_avg_trade_pnl)
    reg.register("profit_factor", m_profit_factor)
    reg.register("outperformance", m_outperformance)
    return reg
