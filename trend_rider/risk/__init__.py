"""Risk: position sizing, exit cascade, reversal detection."""

from trend_rider.risk.exits import PositionMonitor, calculate_position_pnl, check_exit_conditions, close_position
from trend_rider.risk.reversal import ReversalDetector, evaluate_reversal
from trend_rider.risk.sizing import PositionSizer

__all__ = [
    "PositionMonitor",
    "calculate_position_pnl",
    "check_exit_conditions",
    "close_position",
    "ReversalDetector",
    "evaluate_reversal",
    "PositionSizer",
]
