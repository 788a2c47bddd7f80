# core/strategy/signals.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from core.models import Action, Bar


@dataclass(frozen=True)
class SignalSet:
    """
    Precomputed strategy output: one long action and one short/exit action
    per bar, index-aligned with the bar series.

    long_signals[i] == BUY  -> open/extend a long at bar i
    short_signals[i] == BUY -> exit the open long at bar i
    """
    long_signals: Sequence[Union[Action, int]]
    short_signals: Sequence[Union[Action, int]]

    def __len__(self) -> int:
        return len(self.long_signals)

    def is_aligned_with(self, n_bars: int) -> bool:
        return len(self.long_signals) == n_bars and len(self.short_signals) == n_bars

    def long_fires(self, idx: int) -> bool:
        return signal_fires(self.long_signals[idx])

    def exit_fires(self, idx: int) -> bool:
        return signal_fires(self.short_signals[idx])


# A strategy function computes the whole SignalSet once from the bar series.
StrategyFn = Callable[[List[Bar]], SignalSet]


def signal_fires(value: Optional[Union[Action, int]]) -> bool:
    """Action.BUY or the numeric 1; anything else (HOLD, SELL, None) is idle."""
    return value is not None and value == Action.BUY
