from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from infra.data_source import HIST_DATA_ROOT


class LocalDataConfig(BaseModel):
    """
    Configuration for loading a bar series (and its precomputed signals)
    from local files.

    Maps directly to LocalFileDataSource.

    YAML example:

      data:
        source: local
        symbol: "BTCUSDT"
        start: "2020-01-01T00:00:00"
        end:   "2020-12-31T00:00:00"
        root: "historical_data"
        long_signal_column: long_signal
        short_signal_column: short_signal
    """

    source: Literal["local"] = "local"

    symbol: str = Field(..., description="Symbol, e.g. BTCUSDT")

    start: Optional[datetime] = Field(
        None,
        description="Inclusive start timestamp; if null, earliest available.",
    )
    end: Optional[datetime] = Field(
        None,
        description="Inclusive end timestamp; if null, latest available.",
    )

    root: Path = Field(
        default_factory=lambda: HIST_DATA_ROOT,
        description="Root folder where historical_data/<SYMBOL> lives.",
    )

    long_signal_column: str = Field(
        "long_signal",
        description="Column holding the precomputed long (entry) actions.",
    )
    short_signal_column: str = Field(
        "short_signal",
        description="Column holding the precomputed short/exit actions.",
    )


DataConfig = LocalDataConfig
