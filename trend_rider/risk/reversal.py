"""
Reversal Detector

Scores how strongly the current window contradicts a held position.
"""

from typing import Sequence

import structlog

from trend_rider.core.models import PositionDirection, PriceHistoryPoint, ReversalSignal
from trend_rider.data.ports import PriceHistoryStore
from trend_rider.signals.indicators import calculate_trend_indicators, volume_weighted_momentum

logger = structlog.get_logger(__name__)

MIN_POINTS = 10
MOMENTUM_THRESHOLD = 2.0  # percent
RSI_LONG_FLOOR = 40.0
RSI_SHORT_CEILING = 60.0
REVERSAL_MIN_SIGNALS = 3

NO_REVERSAL = ReversalSignal(reversed=False, new_direction=None, confidence=0.0)


def evaluate_reversal(history: Sequence[PriceHistoryPoint], direction: PositionDirection) -> ReversalSignal:
    """
    Count opposing signals for a position held in `direction`.

    Long:  momentum < -2%, MACD below signal, RSI < 40, price below SMA20
    Short: momentum > +2%, MACD above signal, RSI > 60, price above SMA20

    Reversed when at least 3 of the 4 agree; confidence = signals / 4 × 100.
    """
    if direction not in ("long", "short"):
        raise ValueError(f"Unknown position direction: {direction}")
    if len(history) < MIN_POINTS:
        return NO_REVERSAL

    indicators = calculate_trend_indicators(history)
    momentum = volume_weighted_momentum(history)
    price = history[-1].price

    if direction == "long":
        signals = [
            momentum < -MOMENTUM_THRESHOLD,
            indicators.macd < indicators.macd_signal,
            indicators.rsi < RSI_LONG_FLOOR,
            price < indicators.sma20,
        ]
    else:
        signals = [
            momentum > MOMENTUM_THRESHOLD,
            indicators.macd > indicators.macd_signal,
            indicators.rsi > RSI_SHORT_CEILING,
            price > indicators.sma20,
        ]

    score = sum(signals)
    reversed_ = score >= REVERSAL_MIN_SIGNALS
    new_direction = None
    if reversed_:
        new_direction = "bearish" if direction == "long" else "bullish"

    return ReversalSignal(reversed=reversed_, new_direction=new_direction, confidence=score / 4 * 100)


class ReversalDetector:
    """Reads a market's window from the store and evaluates it."""

    def __init__(self, store: PriceHistoryStore, window_minutes: float = 5):
        self.store = store
        self.window_minutes = window_minutes

    def detect(self, market_id: str, direction: PositionDirection) -> ReversalSignal:
        """Never raises on store errors: a failed read is no reversal."""
        try:
            history = self.store.read_window(market_id, self.window_minutes)
        except Exception as e:
            logger.warning("reversal_window_read_failed", market_id=market_id, error=str(e))
            return NO_REVERSAL

        return evaluate_reversal(history, direction)
