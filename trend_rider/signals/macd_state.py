"""
Incremental MACD

Per-market rolling EMA state so the MACD signal line does not have to be
rebuilt from every prefix of the window on each tick. Output matches
indicators.macd() on the same window exactly.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from trend_rider.core.models import PriceHistoryPoint
from trend_rider.signals.indicators import sma

FAST, SLOW, SIGNAL = 12, 26, 9


@dataclass
class _Ema:
    """EMA seeded with the SMA of its first `period` inputs."""

    period: int
    seed: List[float] = field(default_factory=list)
    value: Optional[float] = None
    count: int = 0

    def push(self, x: float) -> None:
        self.count += 1
        if self.value is None:
            self.seed.append(x)
            if len(self.seed) == self.period:
                self.value = sma(self.seed, self.period)
            return
        self.value = (x - self.value) * (2 / (self.period + 1)) + self.value


@dataclass
class MacdState:
    """Rolling MACD state for one market window."""

    window_start: Optional[float] = None
    last_timestamp: Optional[float] = None
    last_price: float = 0.0
    count: int = 0
    fast: _Ema = field(default_factory=lambda: _Ema(FAST))
    slow: _Ema = field(default_factory=lambda: _Ema(SLOW))
    signal: _Ema = field(default_factory=lambda: _Ema(SIGNAL))
    last_macd: float = 0.0

    def push(self, point: PriceHistoryPoint) -> None:
        if self.window_start is None:
            self.window_start = point.timestamp
        self.last_timestamp = point.timestamp
        self.last_price = point.price
        self.count += 1

        self.fast.push(point.price)
        self.slow.push(point.price)

        if self.slow.value is not None:
            self.last_macd = self.fast.value - self.slow.value
            self.signal.push(self.last_macd)

    def extends(self, window: Sequence[PriceHistoryPoint]) -> bool:
        """True when `window` is the consumed points plus newer ones."""
        if self.count == 0 or not window or len(window) < self.count:
            return False
        if window[0].timestamp != self.window_start:
            return False
        anchor = window[self.count - 1]
        return anchor.timestamp == self.last_timestamp and anchor.price == self.last_price

    def values(self) -> Tuple[float, float]:
        """(macd, signal) for everything pushed so far."""
        fast = self.fast.value if self.fast.value is not None else self.last_price
        slow = self.slow.value if self.slow.value is not None else self.last_price
        line = fast - slow

        if self.signal.count == 0:
            return line, 0.0
        if self.signal.value is None:
            return line, self.last_macd
        return line, self.signal.value


class MacdTracker:
    """
    MacdState per market id.

    While a market's window keeps its start point, only new ticks are fed.
    When the window slides (or anything else changes), the state is rebuilt
    from the window. An empty window evicts the market.
    """

    def __init__(self):
        self._states: Dict[str, MacdState] = {}
        self._lock = threading.Lock()
        self.rebuilds = 0

    def update(self, market_id: str, window: Sequence[PriceHistoryPoint]) -> Tuple[float, float]:
        """
        Bring the market's state up to `window` and return (macd, signal).
        """
        with self._lock:
            if not window:
                self._states.pop(market_id, None)
                return 0.0, 0.0

            state = self._states.get(market_id)

            if state is None or not state.extends(window):
                state = MacdState()
                self._states[market_id] = state
                self.rebuilds += 1
                new_points = window
            else:
                new_points = window[state.count:]

            for point in new_points:
                state.push(point)

            return state.values()

    def reset(self, market_id: Optional[str] = None) -> None:
        """Drop state for one market, or all of them."""
        with self._lock:
            if market_id is None:
                self._states.clear()
            else:
                self._states.pop(market_id, None)

    def retain(self, market_ids: Iterable[str]) -> None:
        """Drop state for every market not in `market_ids`."""
        keep = set(market_ids)
        with self._lock:
            for market_id in [m for m in self._states if m not in keep]:
                del self._states[market_id]

    def __len__(self) -> int:
        return len(self._states)
