"""Data access: store/provider interfaces and their adapters."""

from trend_rider.data.history import InMemoryPriceHistoryStore
from trend_rider.data.loader import GammaMarketLoader
from trend_rider.data.ports import PriceHistoryStore, SnapshotProvider

__all__ = [
    "InMemoryPriceHistoryStore",
    "GammaMarketLoader",
    "PriceHistoryStore",
    "SnapshotProvider",
]
