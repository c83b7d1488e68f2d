"""
Data structures shared by the scanner, the sizer and the exit engine.
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional

VolumeTrend = Literal["increasing", "decreasing", "stable"]
SignalDirection = Literal["bullish", "bearish"]
PositionDirection = Literal["long", "short"]
PositionStatus = Literal["open", "closing", "closed"]
ExitKind = Literal["profit_target", "stop_loss", "trailing_stop", "time_limit", "trend_reversal"]

# Exit cascade order, first match wins
EXIT_PRIORITY = ("profit_target", "stop_loss", "trailing_stop", "time_limit", "trend_reversal")


@dataclass
class PriceHistoryPoint:
    """One observed tick. Timestamps are epoch milliseconds."""

    timestamp: float
    price: float
    volume: float = 0.0


@dataclass
class TrendIndicators:
    """Indicator set computed fresh from a rolling window every cycle."""

    sma20: float
    sma50: float
    ema12: float
    ema26: float
    rsi: float
    macd: float
    macd_signal: float
    volume_trend: VolumeTrend
    trend_strength: float  # |price - sma20| / sma20, in percent
    confirmed: bool
    confirmation_score: int = 0


@dataclass
class InstrumentSnapshot:
    """
    Raw per-cycle market snapshot from the snapshot provider.

    outcome_prices holds the two-outcome price pair as delivered by the feed
    (usually strings); parsing happens in the scanner.
    """

    id: str
    question: str
    outcome_prices: List[str] = field(default_factory=list)
    volume: float = 0.0
    liquidity: float = 0.0
    category: Optional[str] = None
    token_id: Optional[str] = None


@dataclass
class MarketSnapshot:
    """Market state attached to an emitted opportunity."""

    id: str
    question: str
    current_price: float
    previous_price: float
    price_change: float
    price_change_percent: float
    velocity: float  # Volume-weighted momentum, percent
    volume: float
    spread: float
    category: str
    token_id: Optional[str] = None


@dataclass
class MomentumOpportunity:
    """Confirmed momentum signal. Transient: one per market per cycle."""

    id: str
    market: MarketSnapshot
    direction: SignalDirection
    strength: float
    timestamp: float
    indicators: TrendIndicators
    trend_confirmed: bool
    volume_trend: VolumeTrend


@dataclass
class TrendPosition:
    """
    Open position owned by the caller.

    The monitor only writes current_price, current_pnl, pnl_percent,
    highest_price, lowest_price and status.
    """

    id: str
    market_id: str
    direction: PositionDirection
    entry_price: float
    current_price: float
    position_size: float
    entry_time: float  # epoch ms
    current_pnl: float = 0.0
    pnl_percent: float = 0.0
    highest_price: Optional[float] = None
    lowest_price: Optional[float] = None
    market_question: str = ""
    status: PositionStatus = "open"


@dataclass(frozen=True)
class ExitReason:
    """
    Closed set of exit reasons.

    Only trend_reversal carries a confidence (percent).
    """

    kind: ExitKind
    confidence: Optional[float] = None

    def __post_init__(self):
        if self.kind not in EXIT_PRIORITY:
            raise ValueError(f"Unknown exit reason: {self.kind}")
        if (self.kind == "trend_reversal") != (self.confidence is not None):
            raise ValueError("confidence is required for trend_reversal and only for it")

    @classmethod
    def profit_target(cls) -> "ExitReason":
        return cls("profit_target")

    @classmethod
    def stop_loss(cls) -> "ExitReason":
        return cls("stop_loss")

    @classmethod
    def trailing_stop(cls) -> "ExitReason":
        return cls("trailing_stop")

    @classmethod
    def time_limit(cls) -> "ExitReason":
        return cls("time_limit")

    @classmethod
    def trend_reversal(cls, confidence: float) -> "ExitReason":
        return cls("trend_reversal", float(confidence))

    @property
    def priority(self) -> int:
        """Position in the exit cascade, 0 = checked first."""
        return EXIT_PRIORITY.index(self.kind)

    def __str__(self) -> str:
        if self.kind == "trend_reversal":
            return f"trend_reversal ({self.confidence:.0f}% confidence)"
        return self.kind


@dataclass
class ExitDecision:
    """Advisory exit decision for one position."""

    position_id: str
    should_exit: bool
    reason: Optional[ExitReason] = None


@dataclass
class ReversalSignal:
    """Reversal detector output."""

    reversed: bool
    new_direction: Optional[SignalDirection]
    confidence: float


@dataclass
class TrendTrade:
    """Closed-trade record built when an exit is acknowledged."""

    id: str
    market_id: str
    market_question: str
    direction: PositionDirection
    entry_price: float
    exit_price: float
    position_size: float
    profit: float  # Net of fees
    profit_percent: float
    fees: float
    entry_time: float
    exit_time: float
    duration_ms: float
    exit_reason: str
