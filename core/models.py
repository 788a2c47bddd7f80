# core/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class Action(int, Enum):
    """
    Signal vocabulary produced by external strategy code.

    Numeric values match the usual indicator-library encoding, so plain
    0/1 arrays can be used interchangeably with Action members.
    """
    SELL = -1
    HOLD = 0
    BUY = 1


def open_side_for(pos_side: PositionSide) -> OrderSide:
    """BUY opens a LONG, SELL opens a SHORT."""
    return OrderSide.BUY if pos_side == PositionSide.LONG else OrderSide.SELL


@dataclass(frozen=True)
class Order:
    """
    Executed order (fill) as recorded by the order log.

    price_avg is the average fill price, fee is paid in quote currency.
    """
    id: Any
    symbol: str
    side: OrderSide
    pos_side: PositionSide
    size: float
    price_avg: float
    created_at: datetime
    fee: float = 0.0


@dataclass(frozen=True)
class Bar:
    """One market bar as consumed by the simulation loop."""
    timestamp: datetime
    close: float
    symbol: str = "ASSET"


@dataclass
class Position:
    """
    Snapshot of one open (symbol, pos_side) position at a given price.
    """
    symbol: str
    pos_side: PositionSide
    open_side: OrderSide
    size: float
    entry_price: float
    current_price: float
    pnl_unrealized: float
    total_fee: float          # opening fees attributable to the remaining size
    notional_value: float
    margin_required: float
    liquidation_price: float
    last_order_id: Optional[str] = None
    opened_at: Optional[datetime] = None


@dataclass(frozen=True)
class ClosedTrade:
    """
    One completed round: the position went from flat to open and back to
    exactly flat, possibly over several partial closes.
    """
    symbol: str
    pos_side: PositionSide
    size: float
    realized_pnl: float       # net of fees_open_used and fees_close
    gross_pnl: float
    fees_open_used: float
    fees_close: float
    opened_at: datetime
    closed_at: datetime
    last_close_order_id: Optional[str] = None

    @property
    def holding_time(self) -> timedelta:
        return self.closed_at - self.opened_at

    @property
    def total_fees(self) -> float:
        return self.fees_open_used + self.fees_close


@dataclass
class SymbolExposure:
    notional: float = 0.0
    pnl_unrealized: float = 0.0
    size: float = 0.0


@dataclass
class PortfolioStats:
    positions: List[Position] = field(default_factory=list)
    count_positions: int = 0
    long_count: int = 0
    short_count: int = 0
    total_unrealized_pnl: float = 0.0
    total_fees_open: float = 0.0
    total_notional: float = 0.0
    total_margin: float = 0.0
    by_symbol: Dict[str, SymbolExposure] = field(default_factory=dict)


@dataclass
class RealizedPnLStats:
    total_realized_pnl: float = 0.0
    total_fees_closed: float = 0.0
    trade_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0     # 0..1
    avg_profit: float = 0.0   # per closed trade
    best: float = 0.0
    worst: float = 0.0
    avg_hold: timedelta = timedelta(0)
