# core/ledger/engine.py
from __future__ import annotations

from datetime import timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from core.ledger.dca import (
    DcaState,
    PositionKey,
    directional_diff,
    liquidation_price,
    replay,
)
from core.ledger.order_log import OrderLog
from core.ledger.rounds import RoundBuilder, collect_closed_trades, replay_rounds
from core.models import (
    ClosedTrade,
    Order,
    PortfolioStats,
    Position,
    PositionSide,
    RealizedPnLStats,
    SymbolExposure,
)
from infra.logging_setup import get_logger


class TradingEngine:
    """
    Position and PnL accounting over an in-memory order log.

    Every query is a pure function of the log content: positions are rebuilt
    by replaying the time-sorted orders (weighted-average / DCA accounting),
    realized PnL by replaying the same orders into closed rounds.

    Replays are cached per log version, so repeated queries between two
    add_order() calls do not replay again.

    Concurrency: single writer, no concurrent readers. add_order() mutates the
    log and its lazy-sort flag; wrap the engine in an external lock if it is
    ever shared between threads.
    """

    def __init__(self, orders: Optional[Iterable[Order]] = None, leverage: float = 1.0) -> None:
        self.leverage = float(leverage)
        self._log = OrderLog(orders)
        self.log = get_logger("ledger.engine")

        self._states_cache: Optional[Tuple[int, Dict[PositionKey, DcaState]]] = None
        self._rounds_cache: Optional[Tuple[int, List[RoundBuilder]]] = None

    # ----------------------------------------------------------------
    # Order log
    # ----------------------------------------------------------------
    def add_order(self, order: Order) -> None:
        self._log.append(order)
        self.log.debug(
            "Order added: id=%r symbol=%s side=%s pos_side=%s size=%s price=%s fee=%s at %s",
            order.id,
            order.symbol,
            getattr(order.side, "value", order.side),
            getattr(order.pos_side, "value", order.pos_side),
            order.size,
            order.price_avg,
            order.fee,
            order.created_at,
        )

    @property
    def orders(self) -> List[Order]:
        return self._log.sorted_view()

    def _states(self) -> Dict[PositionKey, DcaState]:
        version = self._log.version
        if self._states_cache is None or self._states_cache[0] != version:
            self._states_cache = (version, replay(self._log.sorted_view()))
        return self._states_cache[1]

    def _rounds(self) -> List[RoundBuilder]:
        version = self._log.version
        if self._rounds_cache is None or self._rounds_cache[0] != version:
            self._rounds_cache = (version, replay_rounds(self._log.sorted_view()))
        return self._rounds_cache[1]

    # ----------------------------------------------------------------
    # Open positions
    # ----------------------------------------------------------------
    def _snapshot(self, state: DcaState, current_price: float) -> Position:
        entry_price = state.avg
        pnl_unrealized = directional_diff(state.pos_side, entry_price, current_price) * state.qty - state.fees
        notional = state.qty * current_price
        margin = notional / self.leverage if self.leverage > 0 else notional

        return Position(
            symbol=state.symbol,
            pos_side=state.pos_side,
            open_side=state.open_side,
            size=state.qty,
            entry_price=entry_price,
            current_price=current_price,
            pnl_unrealized=pnl_unrealized,
            total_fee=state.fees,
            notional_value=notional,
            margin_required=margin,
            liquidation_price=liquidation_price(
                entry_price, state.qty, state.pos_side, margin, state.fees
            ),
            last_order_id=state.last_order_id if isinstance(state.last_order_id, str) else None,
            opened_at=state.opened_at,
        )

    def get_position(self, symbol: str, pos_side: PositionSide, current_price: float) -> Optional[Position]:
        """
        Net open position for (symbol, pos_side) marked at current_price,
        or None when the position is flat or was never opened.
        """
        state = self._states().get((symbol, pos_side))
        if state is None or not state.is_open:
            return None
        return self._snapshot(state, float(current_price))

    def rebuild_all_positions(self, current_prices: Mapping[str, float]) -> List[Position]:
        """
        All open positions; a symbol missing from current_prices is marked at 0.
        """
        positions: List[Position] = []
        for state in self._states().values():
            if not state.is_open:
                continue
            price = float(current_prices.get(state.symbol) or 0.0)
            positions.append(self._snapshot(state, price))
        return positions

    def get_portfolio_stats(self, current_prices: Mapping[str, float]) -> PortfolioStats:
        positions = self.rebuild_all_positions(current_prices)
        stats = PortfolioStats(positions=positions, count_positions=len(positions))

        for p in positions:
            stats.total_unrealized_pnl += p.pnl_unrealized
            stats.total_fees_open += p.total_fee
            stats.total_notional += p.notional_value
            stats.total_margin += p.margin_required
            if p.pos_side == PositionSide.LONG:
                stats.long_count += 1
            else:
                stats.short_count += 1

            exposure = stats.by_symbol.setdefault(p.symbol, SymbolExposure())
            exposure.notional += p.notional_value
            exposure.pnl_unrealized += p.pnl_unrealized
            exposure.size += p.size

        return stats

    # ----------------------------------------------------------------
    # Realized PnL
    # ----------------------------------------------------------------
    def get_closed_trades(self) -> List[ClosedTrade]:
        return collect_closed_trades(self._rounds())

    def get_realized_pnl_stats(self) -> RealizedPnLStats:
        """
        Aggregates over completed rounds.

        total_fees_closed also covers partial closes of rounds that are still
        open, since those fee portions have left the open position.
        """
        stats = RealizedPnLStats()
        best = float("-inf")
        worst = float("inf")
        hold_sum = timedelta(0)

        for builder in self._rounds():
            stats.total_fees_closed += builder.fees_closed
            for trade in builder.get_trades():
                pnl = trade.realized_pnl
                stats.trade_count += 1
                stats.total_realized_pnl += pnl
                if pnl > 0:
                    stats.win_count += 1
                elif pnl < 0:
                    stats.loss_count += 1
                best = max(best, pnl)
                worst = min(worst, pnl)
                hold_sum += trade.holding_time

        if stats.trade_count > 0:
            stats.win_rate = stats.win_count / stats.trade_count
            stats.avg_profit = stats.total_realized_pnl / stats.trade_count
            stats.avg_hold = hold_sum / stats.trade_count
            stats.best = best
            stats.worst = worst

        return stats
