"""
Position Sizer

Scales a base size by signal quality and caps it against total capital.
"""

import numpy as np

from trend_rider.core.config import SizingConfig
from trend_rider.core.models import TrendIndicators

MIN_MULTIPLIER = 0.5
MAX_MULTIPLIER = 2.0
MAX_CAPITAL_FRACTION = 0.1  # No single position above 10% of capital


class PositionSizer:
    """
    Confidence-scaled sizing.

    multiplier = 1.0
      +0.3 confirmed trend
      +0.2 trend strength > 10% (else +0.1 if > 5%)
      +0.1 rising volume
      -0.2 RSI overbought (>70) or oversold (<30)
    clamped to [0.5, 2.0]; size = base × multiplier, capped at 10% of capital.
    """

    def __init__(self, config: SizingConfig):
        self.config = config

    @staticmethod
    def multiplier(indicators: TrendIndicators) -> float:
        m = 1.0

        if indicators.confirmed:
            m += 0.3

        if indicators.trend_strength > 10:
            m += 0.2
        elif indicators.trend_strength > 5:
            m += 0.1

        if indicators.volume_trend == "increasing":
            m += 0.1

        if indicators.rsi > 70 or indicators.rsi < 30:
            m -= 0.2

        return float(np.clip(m, MIN_MULTIPLIER, MAX_MULTIPLIER))

    def base_size(self) -> float:
        """Base size from the configured mode: fixed USD or percent of capital."""
        if self.config.position_size_mode == "percent":
            return self.config.total_capital * self.config.position_size_percent / 100
        if self.config.position_size_mode == "fixed":
            return self.config.position_size
        raise ValueError(f"Unknown position_size_mode: {self.config.position_size_mode}")

    def size(self, indicators: TrendIndicators, base_size=None, total_capital=None) -> float:
        """
        Dynamic position size.

        Args:
            indicators: Indicators of the signal being sized
            base_size: Override for the configured base size
            total_capital: Override for the configured capital

        Returns:
            Size in USD, never above 10% of total capital
        """
        base = self.base_size() if base_size is None else base_size
        capital = self.config.total_capital if total_capital is None else total_capital

        adjusted = base * self.multiplier(indicators)
        return min(adjusted, capital * MAX_CAPITAL_FRACTION)
