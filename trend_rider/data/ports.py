"""
Capability interfaces the core depends on.

Anything with these methods can back the scanner and the monitor: a
database table, an HTTP feed, or the synthetic fakes used in tests.
"""

from typing import List, Protocol, runtime_checkable

from trend_rider.core.models import InstrumentSnapshot, PriceHistoryPoint


@runtime_checkable
class PriceHistoryStore(Protocol):
    """Append-only tick store with rolling-window reads."""

    def append(self, instrument_id: str, price: float, volume: float, timestamp: float) -> None:
        ...

    def read_window(self, instrument_id: str, window_minutes: float) -> List[PriceHistoryPoint]:
        """Points newer than now - window, ascending by timestamp."""
        ...


@runtime_checkable
class SnapshotProvider(Protocol):
    """Source of per-cycle market snapshots."""

    def fetch_snapshots(self) -> List[InstrumentSnapshot]:
        ...
