# core/ledger/dca.py
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from core.models import Order, OrderSide, PositionSide, open_side_for
from infra.logging_setup import get_logger

log = get_logger("ledger.dca")

PositionKey = Tuple[str, PositionSide]


@dataclass(frozen=True)
class DcaState:
    """
    Weighted-average state of one (symbol, pos_side) position.

    fees only covers the opening fees attributable to the *remaining* qty:
    every partial close scales it by remaining / previous qty.
    """
    symbol: str
    pos_side: PositionSide
    qty: float = 0.0
    avg: float = 0.0
    fees: float = 0.0
    opened_at: Optional[datetime] = None
    last_order_id: Any = None

    @property
    def open_side(self) -> OrderSide:
        return open_side_for(self.pos_side)

    @property
    def is_open(self) -> bool:
        return self.qty > 0


@dataclass(frozen=True)
class CloseFill:
    """Accounting of one closing order against a DcaState."""
    close_size: float
    gross_pnl: float
    fees_open_part: float
    fee_close: float

    @property
    def realized_pnl(self) -> float:
        return self.gross_pnl - self.fees_open_part - self.fee_close


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def order_fee(order: Order) -> float:
    fee = _as_number(order.fee or 0.0)
    return fee if math.isfinite(fee) else 0.0


def coerce_sides(order: Any) -> Optional[Tuple[OrderSide, PositionSide]]:
    """Enum members or their string values ("buy", "long"); None if unknown."""
    try:
        return OrderSide(getattr(order, "side", None)), PositionSide(getattr(order, "pos_side", None))
    except (TypeError, ValueError):
        return None


def order_key(order: Order) -> PositionKey:
    return (order.symbol, PositionSide(order.pos_side))


def is_valid_order(order: Any) -> bool:
    """
    Orders that cannot be accounted for are skipped silently:
    missing symbol, unknown sides, or a price/size that is not a finite number > 0.
    """
    if not getattr(order, "symbol", None):
        return False
    if coerce_sides(order) is None:
        return False

    price = _as_number(getattr(order, "price_avg", None))
    size = _as_number(getattr(order, "size", None))
    if not math.isfinite(price) or price <= 0:
        return False
    if not math.isfinite(size) or size <= 0:
        return False
    return True


def prorate_fees(fees: float, qty: float, part: float) -> float:
    return fees * (part / qty) if qty > 0 else 0.0


def directional_diff(pos_side: PositionSide, entry: float, price: float) -> float:
    return price - entry if pos_side == PositionSide.LONG else entry - price


def apply_open(state: DcaState, order: Order) -> DcaState:
    price = float(order.price_avg)
    size = float(order.size)
    new_qty = state.qty + size
    avg = (state.avg * state.qty + price * size) / new_qty if state.qty > 0 else price
    return replace(
        state,
        qty=new_qty,
        avg=avg,
        fees=state.fees + order_fee(order),
        opened_at=state.opened_at if state.opened_at is not None else order.created_at,
        last_order_id=order.id,
    )


def apply_close(state: DcaState, order: Order) -> Tuple[DcaState, CloseFill]:
    price = float(order.price_avg)
    close_size = min(state.qty, float(order.size))
    remaining = state.qty - close_size

    fill = CloseFill(
        close_size=close_size,
        gross_pnl=directional_diff(state.pos_side, state.avg, price) * close_size,
        fees_open_part=prorate_fees(state.fees, state.qty, close_size),
        fee_close=order_fee(order),
    )

    if remaining == 0:
        new_state = replace(
            state, qty=0.0, avg=0.0, fees=0.0, opened_at=None, last_order_id=order.id
        )
    else:
        new_state = replace(
            state,
            qty=remaining,
            fees=prorate_fees(state.fees, state.qty, remaining),
            last_order_id=order.id,
        )
    return new_state, fill


def apply_order(state: DcaState, order: Order) -> Tuple[DcaState, Optional[CloseFill]]:
    """
    Single step of the DCA state machine.

    Opening side grows the position; the opposite side closes it. A close
    against a flat position is a no-op (no reversal into the other side).
    """
    if order.side == state.open_side:
        return apply_open(state, order), None
    if state.qty > 0:
        return apply_close(state, order)
    return state, None


def replay(orders: Iterable[Order]) -> Dict[PositionKey, DcaState]:
    """
    Fold time-ordered orders into the final DcaState per (symbol, pos_side).

    Keys appear once their first valid order is seen, and stay even when the
    position is flat again; callers filter on DcaState.is_open.
    """
    states: Dict[PositionKey, DcaState] = {}
    for order in orders:
        if not is_valid_order(order):
            log.debug("Skipping invalid order id=%r", getattr(order, "id", None))
            continue
        key = order_key(order)
        state = states.get(key) or DcaState(symbol=key[0], pos_side=key[1])
        states[key], _ = apply_order(state, order)
    return states


def liquidation_price(
    entry_price: float,
    size: float,
    pos_side: PositionSide,
    margin: float,
    fees: float,
) -> float:
    """
    Approximate liquidation price: the price at which the loss eats the
    margin left after fees. Not an exchange maintenance-margin model.

    Returns 0.0 for degenerate inputs or when fees already consume the margin.
    """
    if size <= 0 or entry_price <= 0:
        return 0.0
    equity = margin - fees
    if equity <= 0:
        return 0.0
    max_loss_per_unit = equity / size
    if pos_side == PositionSide.LONG:
        return entry_price - max_loss_per_unit
    return entry_price + max_loss_per_unit
