# tests/test_backtest_engine.py
from __future__ import annotations

from datetime import datetime, timedelta

import pandas as pd
import pytest

from backtest.engine import BacktestConfigError, BacktestEngine
from core.models import Action, Bar, OrderSide, PositionSide
from core.strategy.signals import SignalSet
from infra.config import BacktestEngineConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

START = datetime(2020, 1, 1)


def make_bars(closes, symbol: str = "BTCUSDT"):
    return [
        Bar(timestamp=START + timedelta(days=i), close=float(c), symbol=symbol)
        for i, c in enumerate(closes)
    ]


def make_config(**overrides) -> BacktestEngineConfig:
    params = dict(
        initial_capital=10_000.0,
        maker_fee=0.001,
        taker_fee=0.002,
        slippage=0.001,
    )
    params.update(overrides)
    return BacktestEngineConfig(**params)


SCENARIO_CLOSES = [7000, 7100, 7300, 7200, 7400]
SCENARIO_SIGNALS = SignalSet(
    long_signals=[0, 1, 0, 0, 1],
    short_signals=[0, 0, 0, 1, 0],
)


def run_scenario(**cfg):
    engine = BacktestEngine(engine_cfg=make_config(**cfg))
    engine.set_data(make_bars(SCENARIO_CLOSES)).set_strategy(SCENARIO_SIGNALS)
    return engine, engine.run()


# ---------------------------------------------------------------------------
# End-to-end scenario
# ---------------------------------------------------------------------------


def test_scenario_equity_curve_shape():
    _, result = run_scenario()

    assert len(result.equity) == 5
    assert result.equity[0].equity == pytest.approx(10_000.0)
    assert result.equity[-1].equity != pytest.approx(10_000.0)
    assert result.winning_trades + result.losing_trades == result.total_trades

    stamps = [p.timestamp for p in result.equity]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_scenario_orders_trades_and_fees():
    _, result = run_scenario()

    orders = result.extra["orders"]
    assert [o.id for o in orders] == ["BTCUSDT-1", "BTCUSDT-2", "BTCUSDT-3"]
    assert [o.side for o in orders] == [OrderSide.BUY, OrderSide.SELL, OrderSide.BUY]
    assert all(o.pos_side == PositionSide.LONG for o in orders)

    buy, sell, rebuy = orders
    assert buy.size == pytest.approx(10_000.0 / 7100.0)
    assert buy.price_avg == pytest.approx(7100.0 * 1.001)
    assert buy.fee == pytest.approx(buy.size * 7100.0 * 0.002)
    assert sell.size == pytest.approx(buy.size)
    assert sell.price_avg == pytest.approx(7200.0 * 0.999)

    assert result.total_trades == 1
    assert len(result.trades) == 1
    trade = result.trades[0]
    expected_gross = (7200.0 * 0.999 - 7100.0 * 1.001) * buy.size
    assert trade.gross_pnl == pytest.approx(expected_gross)
    assert trade.realized_pnl == pytest.approx(expected_gross - buy.fee - sell.fee)

    # last bar re-opens a long that stays open
    assert len(result.positions) == 1
    assert result.positions[0].size == pytest.approx(rebuy.size)
    assert result.total_fees == pytest.approx(buy.fee + sell.fee + rebuy.fee)
    assert result.total_fees > 0


def test_scenario_equity_follows_ledger():
    _, result = run_scenario()

    realized = result.extra["realized_stats"]
    portfolio = result.extra["portfolio_stats"]
    expected_final = (
        10_000.0
        + realized.total_realized_pnl
        - realized.total_fees_closed
        + portfolio.total_unrealized_pnl
        - portfolio.total_fees_open
    )
    assert result.final_equity == pytest.approx(expected_final)


def test_scenario_baseline_and_outperformance():
    _, result = run_scenario()

    baseline = result.baseline_buy_and_hold
    assert baseline.total_return == pytest.approx(7400.0 / 7000.0 - 1.0)
    assert len(baseline.equity) == 5
    assert result.outperformance_vs_buy_and_hold == pytest.approx(
        result.net_profit - baseline.net_profit
    )


def test_scenario_drawdown_and_metrics():
    _, result = run_scenario()

    # running peak includes the current point: first point and new highs sit at 0
    assert result.equity[0].drawdown == 0.0
    assert all(p.drawdown >= 0 for p in result.equity)
    assert result.max_drawdown == pytest.approx(max(p.drawdown for p in result.equity))
    assert result.max_drawdown > 0  # entry costs push equity below the start
    assert "sharpe_ratio" in result.metrics
    assert result.metrics["n_trades"] == 1.0


def test_run_twice_resets_state():
    engine, first = run_scenario()
    second = engine.run()

    assert len(second.equity) == len(first.equity)
    assert [o.id for o in second.extra["orders"]] == [o.id for o in first.extra["orders"]]
    assert second.final_equity == pytest.approx(first.final_equity)


def test_no_signals_keeps_equity_flat():
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_data(make_bars([100, 110, 90])).set_strategy(
        SignalSet(long_signals=[Action.HOLD] * 3, short_signals=[Action.HOLD] * 3)
    )

    result = engine.run()

    assert [p.equity for p in result.equity] == [10_000.0] * 3
    assert result.total_trades == 0
    assert result.win_rate == 0.0
    assert result.sharpe_ratio == 0.0
    assert result.max_drawdown == 0.0


def test_exit_without_open_long_is_ignored():
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_data(make_bars([100, 110])).set_strategy(
        SignalSet(long_signals=[0, 0], short_signals=[1, 1])
    )

    result = engine.run()

    assert result.extra["orders"] == []
    assert result.total_trades == 0


def test_sell_encoding_does_not_fire():
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_data(make_bars([100, 110])).set_strategy(
        SignalSet(long_signals=[Action.SELL, Action.SELL], short_signals=[0, 0])
    )

    assert engine.run().extra["orders"] == []


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def test_strategy_function_receives_bars():
    seen = {}

    def strategy(bars):
        seen["n"] = len(bars)
        return SignalSet(long_signals=[1] + [0] * (len(bars) - 1), short_signals=[0] * len(bars))

    engine = BacktestEngine(engine_cfg=make_config())
    result = engine.set_data(make_bars([100, 101, 102])).set_strategy(strategy).run()

    assert seen["n"] == 3
    assert len(result.positions) == 1


def test_set_series_and_symbol():
    dates = [START + timedelta(hours=i) for i in range(3)]
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_series(dates, [10.0, 11.0, 12.0], symbol="ETHUSDT")
    engine.set_strategy(SignalSet([1, 0, 0], [0, 0, 1]))

    result = engine.run()

    assert result.symbol == "ETHUSDT"
    assert result.extra["orders"][0].id == "ETHUSDT-1"
    assert result.total_trades == 1


def test_set_series_length_mismatch():
    engine = BacktestEngine(engine_cfg=make_config())
    with pytest.raises(BacktestConfigError):
        engine.set_series([START], [1.0, 2.0])


def test_set_dataframe():
    idx = pd.date_range("2021-01-01", periods=4, freq="D")
    df = pd.DataFrame({"Close": [100.0, 101.0, 102.0, 103.0]}, index=idx)

    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_dataframe(df, symbol="XRPUSDT").set_strategy(SignalSet([0] * 4, [0] * 4))
    result = engine.run()

    assert result.symbol == "XRPUSDT"
    assert result.equity[0].timestamp == datetime(2021, 1, 1)
    assert len(result.equity) == 4


def test_set_dataframe_without_close_column():
    df = pd.DataFrame({"Open": [1.0]}, index=pd.date_range("2021-01-01", periods=1))
    with pytest.raises(BacktestConfigError):
        BacktestEngine(engine_cfg=make_config()).set_dataframe(df, symbol="X")


def test_date_range_filters_bars():
    engine = BacktestEngine(
        engine_cfg=make_config(
            start_date=START + timedelta(days=1),
            end_date=START + timedelta(days=3),
        )
    )
    engine.set_data(make_bars(SCENARIO_CLOSES)).set_strategy(SCENARIO_SIGNALS)

    result = engine.run()

    assert [p.timestamp for p in result.equity] == [START + timedelta(days=i) for i in (1, 2, 3)]
    # buy-and-hold starts at the first bar in range
    assert result.baseline_buy_and_hold.total_return == pytest.approx(7200.0 / 7100.0 - 1.0)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


def test_run_without_data_raises():
    engine = BacktestEngine(engine_cfg=make_config()).set_strategy(SCENARIO_SIGNALS)
    with pytest.raises(BacktestConfigError):
        engine.run()


def test_run_without_strategy_raises():
    engine = BacktestEngine(engine_cfg=make_config()).set_data(make_bars(SCENARIO_CLOSES))
    with pytest.raises(BacktestConfigError):
        engine.run()


def test_signal_length_mismatch_raises():
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_data(make_bars(SCENARIO_CLOSES)).set_strategy(SignalSet([0, 1], [0, 0]))
    with pytest.raises(BacktestConfigError):
        engine.run()


def test_strategy_returning_wrong_type_raises():
    engine = BacktestEngine(engine_cfg=make_config())
    engine.set_data(make_bars(SCENARIO_CLOSES)).set_strategy(lambda bars: [0] * len(bars))
    with pytest.raises(BacktestConfigError):
        engine.run()


def test_empty_date_range_raises():
    engine = BacktestEngine(engine_cfg=make_config(start_date=datetime(2030, 1, 1)))
    engine.set_data(make_bars(SCENARIO_CLOSES)).set_strategy(SCENARIO_SIGNALS)
    with pytest.raises(BacktestConfigError):
        engine.run()
