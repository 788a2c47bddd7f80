# infra/config/engine_config.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


# Widest range a bar timestamp may fall into when no bounds are configured.
EARLIEST_DATE = datetime(1970, 1, 1)
LATEST_DATE = datetime.max


class BacktestEngineConfig(BaseModel):
    """
    Configuration for BacktestEngine.

    Notes:
    - initial_capital is quote-currency cash (e.g. USDT).
    - fees and slippage are fractions (0.0005 = 0.05%). Synthetic orders are
      market orders, so only taker_fee is charged; maker_fee is kept for
      strategies that place resting orders.
    - start_date / end_date are inclusive bar bounds; None means unbounded.
    """

    initial_capital: float = Field(..., description="Starting equity in quote currency.")

    maker_fee: float = Field(0.0002, ge=0.0)
    taker_fee: float = Field(0.0005, ge=0.0)
    slippage: float = Field(0.0001, ge=0.0)

    leverage: float = Field(1.0, description="Position size multiplier; <= 0 means margin = notional.")

    start_date: Optional[datetime] = Field(None, description="Inclusive lower bar bound.")
    end_date: Optional[datetime] = Field(None, description="Inclusive upper bar bound.")

    metrics: List[str] = Field(
        default_factory=list,
        description="Metric names to compute; empty = all registered metrics.",
    )

    @model_validator(mode="after")
    def _check_date_range(self) -> "BacktestEngineConfig":
        if self.start_date is not None and self.end_date is not None:
            if _naive(self.start_date) > _naive(self.end_date):
                raise ValueError(
                    f"start_date {self.start_date} is after end_date {self.end_date}"
                )
        return self

    def includes(self, ts: datetime) -> bool:
        """True if ts lies within [start_date, end_date] (open ends = widest range)."""
        start = self.start_date if self.start_date is not None else EARLIEST_DATE
        end = self.end_date if self.end_date is not None else LATEST_DATE
        return _naive(start) <= _naive(ts) <= _naive(end)


def _naive(ts: datetime) -> datetime:
    # compare tz-aware and naive bounds on a UTC basis
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


EngineConfig = BacktestEngineConfig
