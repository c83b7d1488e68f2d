"""
Kill Switch

Blocks new entries when:
- Realised PnL since UTC midnight breaches the daily loss limit
- A losing trade closed less than cooldown_minutes ago

Exits are never blocked; the monitor keeps running regardless.
"""

from datetime import datetime, timezone
from typing import List, Optional

import structlog

from trend_rider.core.config import GuardConfig
from trend_rider.core.models import TrendTrade

logger = structlog.get_logger(__name__)


def utc_midnight_ms(now: float) -> float:
    day = datetime.fromtimestamp(now / 1000, tz=timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return day.timestamp() * 1000


class KillSwitch:
    """Circuit breaker for new entries."""

    def __init__(self, config: GuardConfig):
        self.config = config
        self.triggered = False
        self.reason: Optional[str] = None
        self.triggered_day: Optional[float] = None

    def check(self, trades: List[TrendTrade], now: float) -> bool:
        """
        Evaluate guards against closed trades.

        Returns:
            True if new entries should be blocked
        """
        today_start = utc_midnight_ms(now)

        if self.triggered:
            if self.triggered_day in (None, today_start):
                return True
            # Daily-loss halt from a previous UTC day
            self.reset()

        today_pnl = sum(t.profit for t in trades if t.exit_time >= today_start)
        if today_pnl < -self.config.daily_loss_limit:
            self.trigger(
                f"Daily loss limit hit: {today_pnl:.2f} < -{self.config.daily_loss_limit:.2f}",
                day=today_start,
            )
            return True

        remaining = self.cooldown_remaining_ms(trades, now)
        if remaining > 0:
            self.reason = f"Cooldown after loss: {remaining / 60_000:.0f}m remaining"
            return True

        self.reason = None
        return False

    def cooldown_remaining_ms(self, trades: List[TrendTrade], now: float) -> float:
        if not self.config.cooldown_enabled:
            return 0.0
        losses = [t.exit_time for t in trades if t.profit < 0]
        if not losses:
            return 0.0
        until = max(losses) + self.config.cooldown_minutes * 60_000
        return max(0.0, until - now)

    def trigger(self, reason: str, day: Optional[float] = None):
        """Trigger kill switch. Without `day` it holds until reset()."""
        self.triggered = True
        self.reason = reason
        self.triggered_day = day
        logger.warning("kill_switch_triggered", reason=reason)

    def reset(self):
        """Reset kill switch (manual intervention or new day)."""
        self.triggered = False
        self.reason = None
        self.triggered_day = None
