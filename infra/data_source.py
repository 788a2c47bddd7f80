# infra/data_source.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from infra.logging_setup import get_logger

# historical_data/<SYMBOL>/<SYMBOL>.parquet.gzip  (preferred)
# historical_data/<SYMBOL>/<SYMBOL>.csv
HIST_DATA_ROOT = Path(__file__).resolve().parents[1] / "historical_data"

# Close drives fills and equity; signal columns ride along untouched.
REQUIRED_COLUMNS = {"Close"}

# First match becomes the DatetimeIndex when a file has none.
DATE_COLUMNS = ("Date", "Timestamp", "date", "timestamp")


@dataclass
class DatasetConfig:
    """
    Which bars to load: symbol plus an optional inclusive [start, end] window
    (ISO strings; None = earliest / latest bar in the file).
    """
    symbol: str
    start: Optional[str] = None
    end: Optional[str] = None


class LocalFileDataSource:
    """
    Bar series for one symbol from local CSV/parquet files.

    Returns a DataFrame with a stably sorted DatetimeIndex and a numeric,
    strictly positive "Close" column. Rows whose close cannot be used for a
    fill are dropped with a warning rather than reaching the engine.
    """

    def __init__(self, root: Path | str = HIST_DATA_ROOT) -> None:
        self.root = Path(root)
        self.log = get_logger("data")

    def find_file_for_symbol(self, symbol: str) -> Path:
        symbol_dir = self.root / symbol
        if not symbol_dir.is_dir():
            raise FileNotFoundError(f"No bar folder for {symbol!r} under {self.root}")

        for candidate in (symbol_dir / f"{symbol}.parquet.gzip", symbol_dir / f"{symbol}.csv"):
            if candidate.is_file():
                self.log.debug("Bar file for %s: %s", symbol, candidate)
                return candidate

        raise FileNotFoundError(
            f"No bar file for {symbol!r} in {symbol_dir} (expected {symbol}.parquet.gzip or {symbol}.csv)"
        )

    def _read_frame(self, path: Path, symbol: str) -> pd.DataFrame:
        df = pd.read_parquet(path) if ".parquet" in path.suffixes else pd.read_csv(path)

        if not isinstance(df.index, pd.DatetimeIndex):
            date_col = next((c for c in DATE_COLUMNS if c in df.columns), None)
            if date_col is None:
                raise ValueError(
                    f"Bars for {symbol} need a DatetimeIndex or one of the columns {list(DATE_COLUMNS)}"
                )
            df[date_col] = pd.to_datetime(df[date_col])
            df = df.set_index(date_col)
            df.index.name = "Date"

        missing = REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise ValueError(f"Bars for {symbol} are missing columns: {sorted(missing)}")

        df["Close"] = pd.to_numeric(df["Close"], errors="coerce")
        unusable = df["Close"].isna() | (df["Close"] <= 0)
        if unusable.any():
            self.log.warning("Dropping %d bar(s) for %s with missing or non-positive close", int(unusable.sum()), symbol)
            df = df[~unusable]

        return df.sort_index(kind="stable")

    def load(self, cfg: DatasetConfig) -> pd.DataFrame:
        """
        Load bars for cfg.symbol and return the inclusive [start, end] slice.
        """
        path = self.find_file_for_symbol(cfg.symbol)
        df = self._read_frame(path, cfg.symbol)
        if df.empty:
            raise ValueError(f"Bar file {path} holds no usable rows")

        start = pd.to_datetime(cfg.start) if cfg.start else df.index[0]
        end = pd.to_datetime(cfg.end) if cfg.end else df.index[-1]
        window = df.loc[start:end]

        if window.empty:
            raise ValueError(
                f"No bars for {cfg.symbol} in [{cfg.start}, {cfg.end}]; "
                f"file covers {df.index[0]} to {df.index[-1]}"
            )

        self.log.info(
            "Loaded %d/%d bars for %s from %s (%s to %s)",
            len(window),
            len(df),
            cfg.symbol,
            path.name,
            window.index[0],
            window.index[-1],
        )
        return window


class InMemoryDataSource:
    """Serves one preloaded bar DataFrame, e.g. for repeated runs over the same series."""

    def __init__(self, df: pd.DataFrame) -> None:
        if df.empty:
            raise ValueError("InMemoryDataSource received an empty DataFrame.")
        self.df = df
        self.log = get_logger("data.memory")

    def load(self, cfg: DatasetConfig) -> pd.DataFrame:
        self.log.debug("In-memory bars for %s (%d rows)", cfg.symbol, len(self.df))
        return self.df
