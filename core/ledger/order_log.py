# core/ledger/order_log.py
from __future__ import annotations

from typing import Iterable, List, Optional

from core.models import Order


class OrderLog:
    """
    Append-only, in-memory store of executed orders.

    - append() never validates; malformed orders are filtered by the
      accounting code that replays the log.
    - sorted_view() sorts lazily by created_at. The sort is stable, so
      orders sharing a timestamp keep their insertion order.

    Not thread-safe: one writer, and no reads concurrent with append().
    """

    def __init__(self, orders: Optional[Iterable[Order]] = None) -> None:
        self._orders: List[Order] = list(orders or [])
        self._sorted = not self._orders
        self._version = len(self._orders)

    def append(self, order: Order) -> None:
        self._orders.append(order)
        self._sorted = False
        self._version += 1

    def sorted_view(self) -> List[Order]:
        if not self._sorted:
            self._orders.sort(key=lambda o: o.created_at)
            self._sorted = True
        return list(self._orders)

    @property
    def version(self) -> int:
        """Bumped on every append; lets readers cache replays."""
        return self._version

    @property
    def is_sorted(self) -> bool:
        return self._sorted

    def __len__(self) -> int:
        return len(self._orders)
