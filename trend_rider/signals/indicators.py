"""
Indicator Engine

Moving averages, RSI, MACD, volume trend, volume-weighted momentum and the
trend confirmation score, all computed from a rolling price/volume window.

Short series never raise: every indicator has a documented neutral fallback.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from trend_rider.core.config import TREND_CONFIRMATION_THRESHOLD
from trend_rider.core.models import PriceHistoryPoint, TrendIndicators, VolumeTrend


def _last(prices: Sequence[float]) -> float:
    return float(prices[-1]) if len(prices) else 0.0


def sma(prices: Sequence[float], period: int) -> float:
    """
    Simple moving average of the last `period` values.

    Falls back to the last value when the series is shorter than `period`
    (0 for an empty series).
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(prices) < period:
        return _last(prices)
    return sum(prices[-period:]) / period


def ema(prices: Sequence[float], period: int) -> float:
    """
    Exponential moving average seeded with the SMA of the first `period` values.

    Same short-series fallback as sma().
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(prices) < period:
        return _last(prices)

    multiplier = 2 / (period + 1)
    value = sma(prices[:period], period)
    for price in prices[period:]:
        value = (price - value) * multiplier + value
    return value


def _running_ema(prices: Sequence[float], period: int) -> List[Optional[float]]:
    """EMA of every prefix; None where the prefix is shorter than `period`."""
    out: List[Optional[float]] = [None] * len(prices)
    if len(prices) < period:
        return out

    multiplier = 2 / (period + 1)
    value = sma(prices[:period], period)
    out[period - 1] = value
    for i in range(period, len(prices)):
        value = (prices[i] - value) * multiplier + value
        out[i] = value
    return out


def rsi(prices: Sequence[float], period: int = 14) -> float:
    """
    Relative strength index over the trailing `period` deltas (simple averages).

    Returns 50 with fewer than period + 1 points and 100 when there were no
    losses.
    """
    if len(prices) < period + 1:
        return 50.0

    deltas = np.diff(np.asarray(prices[-(period + 1):], dtype=float))
    avg_gain = float(deltas[deltas > 0].sum()) / period
    avg_loss = float(-deltas[deltas < 0].sum()) / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def macd(prices: Sequence[float]) -> Tuple[float, float]:
    """
    MACD line and signal line.

    The signal is the 9-period EMA of the MACD value of every prefix of
    length 26..n. Prefix EMAs are the running EMAs, so one pass gives the
    same numbers as recomputing each prefix from scratch.

    Returns:
        (macd, signal)
    """
    line = ema(prices, 12) - ema(prices, 26)

    ema12 = _running_ema(prices, 12)
    ema26 = _running_ema(prices, 26)
    history = [ema12[i] - ema26[i] for i in range(25, len(prices))]

    return line, ema(history, 9)


def volume_trend(history: Sequence[PriceHistoryPoint]) -> VolumeTrend:
    """Mean volume of the last 5 points against the 5 before them."""
    if len(history) < 10:
        return "stable"

    volumes = np.array([p.volume or 0.0 for p in history[-10:]], dtype=float)
    older = float(volumes[:5].mean())
    recent = float(volumes[5:].mean())

    if recent > older * 1.2:
        return "increasing"
    if recent < older * 0.8:
        return "decreasing"
    return "stable"


def volume_weighted_momentum(history: Sequence[PriceHistoryPoint]) -> float:
    """
    Price velocity over the window, each interval weighted by its volume.

    Expressed as a percent of the window's first price. Falls back to the
    plain percent change when the window traded no volume.
    """
    if len(history) < 2:
        return 0.0

    first = history[0].price
    if first == 0:
        return 0.0

    prices = np.array([p.price for p in history], dtype=float)
    volumes = np.array([p.volume or 0.0 for p in history[1:]], dtype=float)
    changes = np.diff(prices)

    total_volume = float(volumes.sum())
    if total_volume == 0:
        return (history[-1].price - first) / first * 100

    weighted_change = float(np.dot(changes, volumes)) / total_volume
    return weighted_change / first * 100


def confirmation_score(
    price: float,
    sma20: float,
    sma50: float,
    macd_line: float,
    macd_signal: float,
    rsi_value: float,
    trend: VolumeTrend,
) -> int:
    """
    Count agreeing trend signals (0-5).

    +2 price, SMA20 and SMA50 strictly stacked in one direction
    +1 MACD away from its signal line
    +1 RSI on the same side of 50 as price is of SMA20
    +1 rising volume
    """
    score = 0

    if (price > sma20 > sma50) or (price < sma20 < sma50):
        score += 2

    if macd_line > macd_signal or macd_line < macd_signal:
        score += 1

    if (price > sma20 and rsi_value > 50) or (price < sma20 and rsi_value < 50):
        score += 1

    if trend == "increasing":
        score += 1

    return score


def neutral_indicators(price: float = 0.0) -> TrendIndicators:
    """Indicators for a window too short to say anything."""
    return TrendIndicators(
        sma20=price,
        sma50=price,
        ema12=price,
        ema26=price,
        rsi=50.0,
        macd=0.0,
        macd_signal=0.0,
        volume_trend="stable",
        trend_strength=0.0,
        confirmed=False,
        confirmation_score=0,
    )


def calculate_trend_indicators(
    history: Sequence[PriceHistoryPoint],
    macd_pair: Optional[Tuple[float, float]] = None,
) -> TrendIndicators:
    """
    Compute the full indicator set for a window.

    Args:
        history: Window ordered by ascending timestamp
        macd_pair: Precomputed (macd, signal) for this exact window, e.g. from
            a MacdTracker; computed here when omitted

    Returns:
        TrendIndicators (neutral when fewer than 2 points)
    """
    if len(history) < 2:
        return neutral_indicators(history[-1].price if history else 0.0)

    prices = [p.price for p in history]
    price = prices[-1]

    sma20 = sma(prices, 20)
    sma50 = sma(prices, 50)
    rsi_value = rsi(prices)
    macd_line, signal = macd_pair if macd_pair is not None else macd(prices)
    trend = volume_trend(history)

    score = confirmation_score(price, sma20, sma50, macd_line, signal, rsi_value, trend)
    trend_strength = abs(price - sma20) / sma20 * 100 if sma20 else 0.0

    return TrendIndicators(
        sma20=sma20,
        sma50=sma50,
        ema12=ema(prices, 12),
        ema26=ema(prices, 26),
        rsi=rsi_value,
        macd=macd_line,
        macd_signal=signal,
        volume_trend=trend,
        trend_strength=trend_strength,
        confirmed=score >= TREND_CONFIRMATION_THRESHOLD,
        confirmation_score=score,
    )
