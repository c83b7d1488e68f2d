"""Signals: indicator engine, incremental MACD, momentum scanner."""

from trend_rider.signals.indicators import calculate_trend_indicators, volume_weighted_momentum
from trend_rider.signals.macd_state import MacdTracker
from trend_rider.signals.scanner import MomentumScanner, rank_opportunities

__all__ = [
    "calculate_trend_indicators",
    "volume_weighted_momentum",
    "MacdTracker",
    "MomentumScanner",
    "rank_opportunities",
]
