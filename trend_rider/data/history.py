"""
In-memory price history store.

Keeps recent ticks per market for paper runs and tests. Reads and appends
for different markets never contend; each market has its own lock.
"""

import bisect
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List

from trend_rider.core.models import PriceHistoryPoint


def now_ms() -> float:
    return time.time() * 1000


class InMemoryPriceHistoryStore:
    """
    PriceHistoryStore backed by per-market sorted lists.

    Args:
        retention_minutes: Ticks older than this are pruned on append
        clock: Returns the current time in epoch ms
    """

    def __init__(self, retention_minutes: float = 24 * 60, clock: Callable[[], float] = now_ms):
        self.retention_ms = retention_minutes * 60_000
        self.clock = clock
        self._points: Dict[str, List[PriceHistoryPoint]] = defaultdict(list)
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def _lock_for(self, instrument_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[instrument_id]

    def append(self, instrument_id: str, price: float, volume: float, timestamp: float) -> None:
        point = PriceHistoryPoint(timestamp=float(timestamp), price=float(price), volume=float(volume or 0.0))

        with self._lock_for(instrument_id):
            points = self._points[instrument_id]
            if not points or points[-1].timestamp <= point.timestamp:
                points.append(point)
            else:
                keys = [p.timestamp for p in points]
                points.insert(bisect.bisect_right(keys, point.timestamp), point)

            cutoff = point.timestamp - self.retention_ms
            drop = 0
            while drop < len(points) and points[drop].timestamp < cutoff:
                drop += 1
            if drop:
                del points[:drop]

    def read_window(self, instrument_id: str, window_minutes: float) -> List[PriceHistoryPoint]:
        cutoff = self.clock() - window_minutes * 60_000

        with self._lock_for(instrument_id):
            points = self._points.get(instrument_id, [])
            return [p for p in points if p.timestamp >= cutoff]

    def instruments(self) -> List[str]:
        with self._registry_lock:
            return list(self._points.keys())
