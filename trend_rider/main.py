"""
Main entry point for the trend rider.

Orchestrates paper cycles: Scheduler → Scanner → Sizer → paper positions,
and Scheduler → Monitor → exit decisions → closed trades → metrics.
Nothing here places orders; positions are bookkeeping only.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from dotenv import load_dotenv

from trend_rider.core.config import Config
from trend_rider.core.models import ExitDecision, MomentumOpportunity, TrendPosition, TrendTrade
from trend_rider.core.scheduler import Scheduler
from trend_rider.data.history import InMemoryPriceHistoryStore, now_ms
from trend_rider.data.loader import GammaMarketLoader
from trend_rider.data.ports import PriceHistoryStore, SnapshotProvider
from trend_rider.monitoring.kill_switch import KillSwitch
from trend_rider.monitoring.log_setup import configure_logging
from trend_rider.monitoring.metrics import MetricsCollector
from trend_rider.risk.exits import PositionMonitor, close_position
from trend_rider.risk.sizing import PositionSizer
from trend_rider.signals.scanner import MomentumScanner

logger = structlog.get_logger(__name__)


class TrendRiderSystem:
    """
    Paper orchestrator.

    Opens advisory positions from the strongest opportunities (bullish →
    long, bearish → short) up to max_concurrent_positions, and closes them
    at their current price when the monitor says so.
    """

    def __init__(
        self,
        config: Config,
        provider: Optional[SnapshotProvider] = None,
        store: Optional[PriceHistoryStore] = None,
    ):
        """
        Initialize system.

        Args:
            config: System configuration (must validate)
            provider: Snapshot source; Gamma API by default
            store: Price history store; in-memory by default
        """
        errors = config.validate()
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

        self.config = config
        self.provider = provider or GammaMarketLoader(config)
        self.store = store or InMemoryPriceHistoryStore()

        self.scanner = MomentumScanner(config, self.store, self.provider)
        self.monitor = PositionMonitor(config.exits, self.store)
        self.sizer = PositionSizer(config.sizing)
        self.kill_switch = KillSwitch(config.guards)
        self.metrics = MetricsCollector()

        self.positions: Dict[str, TrendPosition] = {}
        self.trades: List[TrendTrade] = []
        self.last_opportunities: List[MomentumOpportunity] = []

        self.scheduler = Scheduler(config, self.run_scan_cycle, self.run_monitor_cycle)

    def open_positions(self) -> List[TrendPosition]:
        return [p for p in self.positions.values() if p.status == "open"]

    def run_scan_cycle(self, now: Optional[float] = None) -> List[TrendPosition]:
        """
        Scan, then open paper positions for new opportunities.

        Returns:
            Positions opened this cycle
        """
        now = now_ms() if now is None else now
        opportunities = self.scanner.scan(self.config.filters, now=now)
        self.last_opportunities = opportunities

        if self.kill_switch.check(self.trades, now):
            logger.info("entries_blocked", reason=self.kill_switch.reason, opportunities=len(opportunities))
            return []

        held = {p.market_id for p in self.open_positions()}
        slots = self.config.sizing.max_concurrent_positions - len(held)

        opened = []
        for opp in opportunities:
            if slots <= 0:
                break
            if opp.market.id in held:
                continue

            size = self.sizer.size(opp.indicators)
            position = TrendPosition(
                id=f"pos-{opp.market.id}-{int(now)}",
                market_id=opp.market.id,
                market_question=opp.market.question,
                direction="long" if opp.direction == "bullish" else "short",
                entry_price=opp.market.current_price,
                current_price=opp.market.current_price,
                position_size=size,
                entry_time=now,
                highest_price=opp.market.current_price,
                lowest_price=opp.market.current_price,
            )
            self.positions[position.id] = position
            held.add(position.market_id)
            opened.append(position)
            slots -= 1

            logger.info(
                "paper_position_opened",
                position_id=position.id,
                direction=position.direction,
                entry_price=position.entry_price,
                size=round(size, 2),
                strength=round(opp.strength, 3),
            )

        return opened

    def run_monitor_cycle(self, now: Optional[float] = None) -> List[ExitDecision]:
        """Monitor open positions and book the exits."""
        now = now_ms() if now is None else now
        decisions = self.monitor.monitor(self.open_positions(), now=now)

        for decision in decisions:
            if not decision.should_exit:
                continue
            position = self.positions[decision.position_id]
            position.status = "closing"
            # Paper fill: acknowledged immediately
            trade = close_position(position, decision.reason, now=now, fee_rate=self.monitor.fee_rate)
            self.trades.append(trade)
            self.metrics.record_trade(trade)
            logger.info(
                "paper_position_closed",
                position_id=position.id,
                reason=trade.exit_reason,
                profit=round(trade.profit, 2),
            )

        return decisions

    def run(self):
        """Run the scheduler (blocks indefinitely)."""
        try:
            self.scheduler.run_forever()
        except KeyboardInterrupt:
            self.scheduler.stop()
        finally:
            logger.info("session_summary", **vars(self.metrics.snapshot()))


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Momentum scanner and exit monitor (paper mode)")
    parser.add_argument("--config", type=str, default="", help="Path to YAML config file")
    parser.add_argument("--once", action="store_true", help="Run a single scan and monitor cycle and exit")
    args = parser.parse_args()

    # Load .env if present (before Config) to populate TR_* variables
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    config = Config.from_yaml(args.config) if args.config else Config()
    configure_logging(config.monitoring)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error("config_invalid", error=err)
        sys.exit(1)

    system = TrendRiderSystem(config)

    if args.once:
        system.run_scan_cycle()
        system.run_monitor_cycle()
        for opp in system.last_opportunities:
            logger.info(
                "opportunity",
                market=opp.market.question,
                direction=opp.direction,
                strength=round(opp.strength, 3),
                score=opp.indicators.confirmation_score,
            )
        return

    system.run()


if __name__ == "__main__":
    main()
