# core/results/summary.py
from __future__ import annotations

from typing import Optional
import logging

from .models import BacktestResult

import pandas as pd


def print_result_summary(result: BacktestResult, logger: Optional[logging.Logger] = None) -> None:
    """
    Print a human-readable summary of the backtest.
    If logger is given, uses logger.info; otherwise, prints to stdout.
    """
    out = logger.info if logger else print
    baseline = result.baseline_buy_and_hold

    out("")
    out("=== Backtest Summary ===")
    out(f"Run:       {result.run_id}")
    out(f"Symbol:    {result.symbol}")
    out(f"Equity:    {result.initial_capital:.2f} -> {result.final_equity:.2f}")
    out(f"Net:       {result.net_profit:.2f} (gross {result.gross_profit:.2f}, fees {result.total_fees:.2f})")
    out(f"Trades:    {result.total_trades} (won {result.winning_trades}, lost {result.losing_trades}, "
        f"win rate {result.win_rate:.2%})")
    out(f"Max DD:    {result.max_drawdown:.2%}")
    out(f"Sharpe:    {result.sharpe_ratio:.4f}")
    out(f"Buy&Hold:  {baseline.net_profit:.2f} ({baseline.total_return:.2%}) "
        f"-> outperformance {result.outperformance_vs_buy_and_hold:.2f}")

    if result.metrics:
        out("")
        out("Metrics:")
        for name, value in sorted(result.metrics.items()):
            if isinstance(value, float):
                out(f"  {name:20s} {value: .4f}")
            else:
                out(f"  {name:20s} {value}")

    out("")
    out(f"Open positions: {len(result.positions)}")
    out(f"Equity points:  {len(result.equity)}")
    out("")


def result_to_dataframes(result: BacktestResult):
    """
    Convert BacktestResult into two DataFrames:
      - trades_df (one row per closed round)
      - equity_df (strategy equity next to the buy & hold baseline)
    """
    trades_rows = [
        {
            "symbol": t.symbol,
            "pos_side": t.pos_side.value,
            "size": t.size,
            "opened_at": t.opened_at,
            "closed_at": t.closed_at,
            "gross_pnl": t.gross_pnl,
            "fees_open_used": t.fees_open_used,
            "fees_close": t.fees_close,
            "realized_pnl": t.realized_pnl,
            "last_close_order_id": t.last_close_order_id,
        }
        for t in result.trades
    ]

    equity_rows = [
        {
            "time": p.timestamp,
            "equity": p.equity,
            "drawdown": p.drawdown,
        }
        for p in result.equity
    ]

    trades_df = pd.DataFrame(trades_rows)
    equity_df = pd.DataFrame(equity_rows)

    baseline = result.baseline_buy_and_hold.equity
    if not equity_df.empty and len(baseline) == len(equity_df):
        equity_df["baseline_equity"] = [p.equity for p in baseline]

    return trades_df, equity_df
