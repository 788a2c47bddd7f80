# core/ledger/rounds.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from core.ledger.dca import (
    CloseFill,
    DcaState,
    PositionKey,
    apply_order,
    is_valid_order,
    order_key,
)
from core.models import ClosedTrade, Order


@dataclass
class _RoundTotals:
    size: float = 0.0
    gross_pnl: float = 0.0
    fees_open_used: float = 0.0
    fees_close: float = 0.0
    realized_pnl: float = 0.0
    last_close_order_id: Optional[str] = None

    def add(self, fill: CloseFill, order: Order) -> None:
        self.size += fill.close_size
        self.gross_pnl += fill.gross_pnl
        self.fees_open_used += fill.fees_open_part
        self.fees_close += fill.fee_close
        self.realized_pnl += fill.realized_pnl
        self.last_close_order_id = order.id if isinstance(order.id, str) else None


def group_orders(orders: Iterable[Order]) -> Dict[PositionKey, List[Order]]:
    """
    Split time-ordered orders by (symbol, pos_side), keeping time order
    inside each group. Invalid orders are dropped here.
    """
    groups: Dict[PositionKey, List[Order]] = {}
    for order in orders:
        if not is_valid_order(order):
            continue
        groups.setdefault(order_key(order), []).append(order)
    return groups


class RoundBuilder:
    """
    Builds ClosedTrade rounds for one (symbol, pos_side) group.

    A round starts when the position opens from flat and ends when it is
    exactly flat again. Partial closes inside a round are merged into one
    ClosedTrade; opening fees are attributed pro rata to each close.
    """

    def __init__(self, key: PositionKey) -> None:
        self.symbol, self.pos_side = key
        self._state = DcaState(symbol=self.symbol, pos_side=self.pos_side)
        self._round = _RoundTotals()
        self._trades: List[ClosedTrade] = []
        # every close so far, including partial closes of a still-open round
        self.fees_closed = 0.0

    def on_order(self, order: Order) -> None:
        opened_at = self._state.opened_at
        self._state, fill = apply_order(self._state, order)
        if fill is None:
            return

        self._round.add(fill, order)
        self.fees_closed += fill.fees_open_part + fill.fee_close

        if self._state.qty == 0 and opened_at is not None:
            self._trades.append(
                ClosedTrade(
                    symbol=self.symbol,
                    pos_side=self.pos_side,
                    size=self._round.size,
                    realized_pnl=self._round.realized_pnl,
                    gross_pnl=self._round.gross_pnl,
                    fees_open_used=self._round.fees_open_used,
                    fees_close=self._round.fees_close,
                    opened_at=opened_at,
                    closed_at=order.created_at,
                    last_close_order_id=self._round.last_close_order_id,
                )
            )
            self._round = _RoundTotals()

    def get_trades(self) -> List[ClosedTrade]:
        return list(self._trades)


def replay_rounds(orders: Iterable[Order]) -> List[RoundBuilder]:
    """
    Replay time-ordered orders into one RoundBuilder per group.

    Groups are visited in sorted key order so aggregates do not depend on
    which symbol happened to trade first.
    """
    groups = group_orders(orders)
    builders: List[RoundBuilder] = []
    for key in sorted(groups, key=lambda k: (k[0], k[1].value)):
        builder = RoundBuilder(key)
        for order in groups[key]:
            builder.on_order(order)
        builders.append(builder)
    return builders


def collect_closed_trades(builders: Iterable[RoundBuilder]) -> List[ClosedTrade]:
    """All completed rounds, ordered by close time (stable)."""
    trades: List[ClosedTrade] = []
    for builder in builders:
        trades.extend(builder.get_trades())
    trades.sort(key=lambda t: t.closed_at)
    return trades
