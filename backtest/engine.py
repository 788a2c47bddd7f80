# backtest/engine.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Union
from uuid import uuid4

import pandas as pd

from core.ledger.engine import TradingEngine
from core.models import Bar, Order, OrderSide, PositionSide
from core.strategy.signals import SignalSet, StrategyFn

from infra.config import BacktestEngineConfig
from infra.logging_setup import get_logger

from core.results.benchmarks import compute_buy_and_hold_baseline
from core.results.metrics import (
    MetricRegistry,
    create_default_metric_registry,
    drawdown_from_peak,
    max_drawdown,
    sharpe_ratio,
)
from core.results.models import BacktestResult, EquityPoint


class BacktestConfigError(ValueError):
    """Raised before a run when market data or strategy are missing/inconsistent."""


class BacktestEngine:
    """
    Signal-driven backtest for one symbol, long only.

    For each bar inside the configured date range:
      1. long signal  -> market BUY of (equity * leverage / close) units,
                         filled at close * (1 + slippage)
      2. exit signal  -> market SELL of the whole open long,
                         filled at close * (1 - slippage)
      3. equity is re-derived from the TradingEngine (realized + unrealized,
         minus closed and open fees)
      4. one EquityPoint is appended

    Fees are taker fees on the unslipped notional (size * close * taker_fee).

    The engine is the single authority for order IDs: SYMBOL-N
    (e.g. "BTCUSDT-1").
    """

    def __init__(
        self,
        engine_cfg: BacktestEngineConfig,
        metric_registry: Optional[MetricRegistry] = None,
    ):
        self.engine_cfg = engine_cfg
        self.log = get_logger("backtest.engine")

        self.metric_registry = metric_registry or create_default_metric_registry()

        self.trading = TradingEngine(leverage=self.engine_cfg.leverage)

        self._bars: List[Bar] = []
        self.symbol: str = "ASSET"
        self._strategy: Optional[Union[SignalSet, StrategyFn]] = None

        self._equity_curve: List[EquityPoint] = []
        self._peak_equity = float("-inf")
        self._order_seq = 0

    # ----------------------------------------------------------------
    # Inputs
    # ----------------------------------------------------------------
    def set_data(self, bars: Sequence[Bar], symbol: Optional[str] = None) -> "BacktestEngine":
        """
        Set the market bar series. If symbol is given it overrides the
        symbol carried by the bars.
        """
        if symbol is not None:
            bars = [Bar(timestamp=b.timestamp, close=b.close, symbol=symbol) for b in bars]
        self._bars = list(bars)
        if self._bars:
            self.symbol = self._bars[0].symbol
        return self

    def set_series(
        self,
        dates: Sequence[datetime],
        closes: Sequence[float],
        symbol: str = "ASSET",
    ) -> "BacktestEngine":
        """Parallel dates/closes arrays, as produced by most indicator libraries."""
        if len(dates) != len(closes):
            raise BacktestConfigError(
                f"dates and closes differ in length: {len(dates)} != {len(closes)}"
            )
        bars = [Bar(timestamp=ts, close=float(c), symbol=symbol) for ts, c in zip(dates, closes)]
        return self.set_data(bars)

    def set_dataframe(self, df: pd.DataFrame, symbol: str) -> "BacktestEngine":
        return self.set_data(self._to_bars(df, symbol))

    def set_strategy(self, strategy: Union[SignalSet, StrategyFn]) -> "BacktestEngine":
        """Precomputed SignalSet, or a function computing one from the bars."""
        self._strategy = strategy
        return self

    # ----------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------
    def run(self) -> BacktestResult:
        """
        Run the full backtest and return BacktestResult.
        """
        if not self._bars or self._strategy is None:
            raise BacktestConfigError("Market data and strategy must be set before running backtest")

        signals = self._resolve_signals()
        indices = [i for i, bar in enumerate(self._bars) if self.engine_cfg.includes(bar.timestamp)]
        if not indices:
            raise BacktestConfigError(
                f"No bars within date range {self.engine_cfg.start_date} – {self.engine_cfg.end_date}"
            )

        started_at = datetime.now()
        initial = float(self.engine_cfg.initial_capital)

        self.log.info(
            "Backtest started: symbol=%s, bars=%d (in range=%d), initial_capital=%.2f, "
            "taker_fee=%.5f, slippage=%.5f, leverage=%.2f",
            self.symbol,
            len(self._bars),
            len(indices),
            initial,
            self.engine_cfg.taker_fee,
            self.engine_cfg.slippage,
            self.engine_cfg.leverage,
        )

        self.trading = TradingEngine(leverage=self.engine_cfg.leverage)
        self._equity_curve = []
        self._peak_equity = float("-inf")
        self._order_seq = 0

        # ----------------------------------------------------------------
        # Main backtest loop
        # ----------------------------------------------------------------
        equity = initial
        for idx in indices:
            bar = self._bars[idx]

            if signals.long_fires(idx):
                self._enter_long(bar, equity)

            if signals.exit_fires(idx):
                self._exit_long(bar)

            equity = self._current_equity(bar)
            self._update_equity(bar.timestamp, equity)

        # ---- After loop: final statistics ----
        included_bars = [self._bars[i] for i in indices]
        last_bar = included_bars[-1]

        portfolio = self.trading.get_portfolio_stats({self.symbol: last_bar.close})
        realized = self.trading.get_realized_pnl_stats()
        trades = self.trading.get_closed_trades()
        winning = sum(1 for t in trades if t.realized_pnl > 0)

        net_profit = realized.total_realized_pnl - realized.total_fees_closed - portfolio.total_fees_open
        baseline = compute_buy_and_hold_baseline(initial_capital=initial, bars=included_bars)

        result = BacktestResult(
            run_id=str(uuid4()),
            symbol=self.symbol,
            started_at=started_at,
            finished_at=datetime.now(),
            initial_capital=initial,
            net_profit=net_profit,
            gross_profit=realized.total_realized_pnl,
            total_fees=realized.total_fees_closed + portfolio.total_fees_open,
            total_trades=len(trades),
            winning_trades=winning,
            losing_trades=len(trades) - winning,
            win_rate=winning / len(trades) if trades else 0.0,
            max_drawdown=max_drawdown(self._equity_curve),
            sharpe_ratio=sharpe_ratio([p.equity for p in self._equity_curve]),
            positions=portfolio.positions,
            trades=trades,
            equity=list(self._equity_curve),
            baseline_buy_and_hold=baseline,
            outperformance_vs_buy_and_hold=net_profit - baseline.net_profit,
        )

        result.extra["orders"] = self.trading.orders
        result.extra["realized_stats"] = realized
        result.extra["portfolio_stats"] = portfolio

        metric_names = self.engine_cfg.metrics or None  # None = all registered
        result.metrics = self.metric_registry.compute_all(result, metric_names)

        self.log.info("=== Backtest completed for symbol=%s ===", self.symbol)
        self.log.info(
            "Final equity=%.2f (start=%.2f) -> net_profit=%.2f, fees=%.2f, max_drawdown=%.2f%%, "
            "sharpe=%.4f, trades=%d, win_rate=%.2f%%, vs buy&hold=%.2f",
            result.final_equity,
            initial,
            result.net_profit,
            result.total_fees,
            result.max_drawdown * 100.0,
            result.sharpe_ratio,
            result.total_trades,
            result.win_rate * 100.0,
            result.outperformance_vs_buy_and_hold,
        )

        return result

    # ----------------------------------------------------------------
    # Signals
    # ----------------------------------------------------------------
    def _resolve_signals(self) -> SignalSet:
        strategy = self._strategy
        signals = strategy if isinstance(strategy, SignalSet) else strategy(list(self._bars))

        if not isinstance(signals, SignalSet):
            raise BacktestConfigError(f"Strategy must produce a SignalSet, got {type(signals).__name__}")
        if not signals.is_aligned_with(len(self._bars)):
            raise BacktestConfigError(
                f"Signal arrays (long={len(signals.long_signals)}, short={len(signals.short_signals)}) "
                f"do not match bar count {len(self._bars)}"
            )
        return signals

    # ----------------------------------------------------------------
    # Order synthesis
    # ----------------------------------------------------------------
    def _next_order_id(self) -> str:
        self._order_seq += 1
        return f"{self.symbol}-{self._order_seq}"

    def _enter_long(self, bar: Bar, equity: float) -> None:
        close = float(bar.close)
        size = equity * self.engine_cfg.leverage / close if close > 0 else 0.0
        order = Order(
            id=self._next_order_id(),
            symbol=self.symbol,
            side=OrderSide.BUY,
            pos_side=PositionSide.LONG,
            size=size,
            price_avg=close * (1 + self.engine_cfg.slippage),
            fee=size * close * self.engine_cfg.taker_fee,
            created_at=bar.timestamp,
        )
        self.trading.add_order(order)
        self.log.debug(
            "BUY @ %s: id=%s size=%.6f price=%.6f fee=%.6f (equity=%.2f)",
            bar.timestamp,
            order.id,
            order.size,
            order.price_avg,
            order.fee,
            equity,
        )

    def _exit_long(self, bar: Bar) -> None:
        close = float(bar.close)
        position = self.trading.get_position(self.symbol, PositionSide.LONG, close)
        if position is None:
            self.log.debug("Exit signal @ %s ignored: no open long", bar.timestamp)
            return

        order = Order(
            id=self._next_order_id(),
            symbol=self.symbol,
            side=OrderSide.SELL,
            pos_side=PositionSide.LONG,
            size=position.size,
            price_avg=close * (1 - self.engine_cfg.slippage),
            fee=position.size * close * self.engine_cfg.taker_fee,
            created_at=bar.timestamp,
        )
        self.trading.add_order(order)
        self.log.debug(
            "SELL @ %s: id=%s size=%.6f price=%.6f fee=%.6f (entry=%.6f)",
            bar.timestamp,
            order.id,
            order.size,
            order.price_avg,
            order.fee,
            position.entry_price,
        )

    # ----------------------------------------------------------------
    # Equity
    # ----------------------------------------------------------------
    def _current_equity(self, bar: Bar) -> float:
        portfolio = self.trading.get_portfolio_stats({self.symbol: float(bar.close)})
        realized = self.trading.get_realized_pnl_stats()
        return (
            float(self.engine_cfg.initial_capital)
            + realized.total_realized_pnl
            - realized.total_fees_closed
            + portfolio.total_unrealized_pnl
            - portfolio.total_fees_open
        )

    def _update_equity(self, timestamp: datetime, equity: float) -> None:
        self._peak_equity = max(self._peak_equity, equity)
        point = EquityPoint(
            timestamp=timestamp,
            equity=equity,
            drawdown=drawdown_from_peak(self._peak_equity, equity),
        )
        self._equity_curve.append(point)

        self.log.debug(
            "Equity update @ %s -> equity=%.2f peak=%.2f drawdown=%.4f",
            timestamp,
            equity,
            self._peak_equity,
            point.drawdown,
        )

    # ----------------------------------------------------------------
    # Data conversion
    # ----------------------------------------------------------------
    def _to_bars(self, df: pd.DataFrame, symbol: str) -> List[Bar]:
        """
        Convert a DataFrame (DatetimeIndex + 'Close' column) to Bar records.
        """
        if "Close" not in df.columns:
            raise BacktestConfigError(f"Data for {symbol} has no 'Close' column")

        bars: List[Bar] = []
        append = bars.append
        for ts, close in zip(df.index, df["Close"]):
            append(Bar(timestamp=ts.to_pydatetime(), close=float(close), symbol=symbol))
        return bars

    @property
    def equity_curve(self) -> List[EquityPoint]:
        return list(self._equity_curve)
