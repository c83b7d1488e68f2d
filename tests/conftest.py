"""
Shared fixtures: synthetic series, a fixed clock, fake ports.
"""

import os
import sys
import threading
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trend_rider.core.models import InstrumentSnapshot, PriceHistoryPoint  # noqa: E402
from trend_rider.data.history import InMemoryPriceHistoryStore  # noqa: E402

NOW = 1_700_000_000_000.0  # epoch ms
TICK_MS = 30_000


def make_history(prices, volumes=None, end=NOW, step_ms=TICK_MS) -> List[PriceHistoryPoint]:
    """Points ending at `end`, `step_ms` apart."""
    if volumes is None:
        volumes = [100.0] * len(prices)
    n = len(prices)
    return [
        PriceHistoryPoint(timestamp=end - (n - 1 - i) * step_ms, price=float(p), volume=float(v))
        for i, (p, v) in enumerate(zip(prices, volumes))
    ]


def breakout_series():
    """19 flat ticks at 1.00 then 1.20, with volume stepping up over the last 5."""
    prices = [1.0] * 19 + [1.2]
    volumes = [100.0] * 15 + [200.0] * 5
    return prices, volumes


def snapshot(market_id="m1", prices=("1.2", "0.8"), volume=5000.0, question="Will BTC hit 100k?", **kw):
    return InstrumentSnapshot(
        id=market_id,
        question=question,
        outcome_prices=list(prices),
        volume=volume,
        liquidity=kw.pop("liquidity", 10_000.0),
        **kw,
    )


class FakeProvider:
    def __init__(self, snapshots=None, error: Optional[Exception] = None):
        self.snapshots = list(snapshots or [])
        self.error = error

    def fetch_snapshots(self):
        if self.error:
            raise self.error
        return list(self.snapshots)


class FlakyStore(InMemoryPriceHistoryStore):
    """In-memory store that raises for selected markets."""

    def __init__(self, failing=(), fail_reads=True, fail_appends=False, **kw):
        super().__init__(**kw)
        self.failing = set(failing)
        self.fail_reads = fail_reads
        self.fail_appends = fail_appends

    def append(self, instrument_id, price, volume, timestamp):
        if self.fail_appends and instrument_id in self.failing:
            raise ConnectionError("store unavailable")
        super().append(instrument_id, price, volume, timestamp)

    def read_window(self, instrument_id, window_minutes):
        if self.fail_reads and instrument_id in self.failing:
            raise ConnectionError("store unavailable")
        return super().read_window(instrument_id, window_minutes)


class StaticStore:
    """Returns canned windows per market, ignoring window length."""

    def __init__(self, windows: Dict[str, List[PriceHistoryPoint]]):
        self.windows = windows
        self.appended = []

    def append(self, instrument_id, price, volume, timestamp):
        self.appended.append((instrument_id, price, volume, timestamp))

    def read_window(self, instrument_id, window_minutes):
        return list(self.windows.get(instrument_id, []))


@pytest.fixture
def store():
    return InMemoryPriceHistoryStore(clock=lambda: NOW)


def preload(store, market_id, prices, volumes, end=NOW):
    """Append every point but the last, which the scan itself records."""
    for p in make_history(prices[:-1], volumes[:-1], end=end - TICK_MS):
        store.append(market_id, p.price, p.volume, p.timestamp)


class SlowStore(InMemoryPriceHistoryStore):
    """In-memory store whose reads for selected markets block until released."""

    def __init__(self, slow=(), **kw):
        super().__init__(**kw)
        self.slow = set(slow)
        self.release = threading.Event()

    def read_window(self, instrument_id, window_minutes):
        if instrument_id in self.slow:
            self.release.wait(5)
        return super().read_window(instrument_id, window_minutes)
