"""
Trend Rider

Momentum scanner and exit engine for two-outcome prediction markets.

Components:
- Indicator Engine: SMA/EMA, RSI, MACD, volume trend, confirmation score
- Momentum Scanner: Filters markets, records ticks, gates and ranks opportunities
- Position Sizer: Confidence-scaled size, capped against capital
- Position Monitor: PnL/watermark refresh and the exit cascade
- Reversal Detector: Opposing-signal score for held positions
- Kill Switch / Metrics: Daily loss limit, cooldown, trade statistics
"""

__version__ = "0.1.0"

from trend_rider.core.config import Config
from trend_rider.core.scheduler import Scheduler
from trend_rider.risk.exits import PositionMonitor
from trend_rider.risk.sizing import PositionSizer
from trend_rider.signals.scanner import MomentumScanner

__all__ = [
    "Config",
    "Scheduler",
    "MomentumScanner",
    "PositionMonitor",
    "PositionSizer",
]
