from __future__ import annotations

import argparse
import time

import pandas as pd

from infra.data_source import DatasetConfig, LocalFileDataSource
from infra.config_loader import load_run_config
from infra.config import RunConfig
from infra.logging_setup import get_logger, init_logging

from backtest.engine import BacktestEngine
from core.strategy.signals import SignalSet
from core.results.summary import print_result_summary


def signals_from_dataframe(df: pd.DataFrame, long_col: str, short_col: str) -> SignalSet:
    """
    Read precomputed actions from two columns; missing cells count as HOLD.
    """
    missing = [c for c in (long_col, short_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Signal columns not found in data: {missing}")

    long_signals = df[long_col].fillna(0).astype(int).tolist()
    short_signals = df[short_col].fillna(0).astype(int).tolist()
    return SignalSet(long_signals=long_signals, short_signals=short_signals)


def main(config_path: str = "config/backtest.yml") -> None:
    # ------------------------------------------------------------------
    # 1) Load high-level run configuration
    # ------------------------------------------------------------------
    run_cfg: RunConfig = load_run_config(config_path)

    logfile = init_logging(
        run_name=run_cfg.logging.name,
        level_name=run_cfg.logging.level,
        log_dir=run_cfg.logging.log_dir,
        to_console=run_cfg.logging.to_console,
        to_file=run_cfg.logging.to_file,
    )
    logger = get_logger(run_cfg.logging.name)
    logger.info("=== Starting backtest run: %s ===", run_cfg.name)
    logger.info("Description: %s", run_cfg.description or "(none)")
    logger.info("Log file for this run: %s", logfile)

    # ------------------------------------------------------------------
    # 2) Load bars + precomputed signals
    # ------------------------------------------------------------------
    data_cfg = run_cfg.data
    ds = LocalFileDataSource(root=data_cfg.root)
    df = ds.load(
        DatasetConfig(
            symbol=data_cfg.symbol,
            start=data_cfg.start.isoformat() if data_cfg.start else None,
            end=data_cfg.end.isoformat() if data_cfg.end else None,
        )
    )
    signals = signals_from_dataframe(df, data_cfg.long_signal_column, data_cfg.short_signal_column)

    engine_cfg = run_cfg.engine
    logger.info(
        "Engine: initial_capital=%.2f | maker_fee=%.6f | taker_fee=%.6f | slippage=%.6f | leverage=%.2f",
        engine_cfg.initial_capital,
        engine_cfg.maker_fee,
        engine_cfg.taker_fee,
        engine_cfg.slippage,
        engine_cfg.leverage,
    )
    logger.info("Engine metrics: %s", engine_cfg.metrics or "(all)")

    # ------------------------------------------------------------------
    # 3) Run backtest (measure execution time)
    # ------------------------------------------------------------------
    engine = BacktestEngine(engine_cfg=engine_cfg)
    engine.set_dataframe(df, symbol=data_cfg.symbol).set_strategy(signals)

    t_start = time.perf_counter()
    result = engine.run()
    elapsed_sec = time.perf_counter() - t_start

    logger.info("Backtest execution time: %.2f seconds", elapsed_sec)

    print_result_summary(result, logger)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a signal-driven DCA backtest.")
    parser.add_argument("--config", default="config/backtest.yml", help="YAML/JSON run config")
    args = parser.parse_args()
    main(args.config)
