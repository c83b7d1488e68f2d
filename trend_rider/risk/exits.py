"""
Position Monitor / Exit Engine

Refreshes price, PnL and watermarks for every open position, then runs the
exit cascade:

    profit_target > stop_loss > trailing_stop > time_limit > trend_reversal

First match wins. A failed or empty price read leaves the position at its
last known price, so a data gap never manufactures an exit.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional, Tuple

import structlog

from trend_rider.core.config import FEE_RATE, REVERSAL_EXIT_CONFIDENCE, ExitConfig
from trend_rider.core.models import (
    ExitDecision,
    ExitReason,
    PositionDirection,
    PriceHistoryPoint,
    ReversalSignal,
    TrendPosition,
    TrendTrade,
)
from trend_rider.data.history import now_ms
from trend_rider.data.ports import PriceHistoryStore
from trend_rider.risk.reversal import NO_REVERSAL, ReversalDetector

logger = structlog.get_logger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


def calculate_position_pnl(
    entry_price: float,
    current_price: float,
    position_size: float,
    direction: PositionDirection,
    fee_rate: float = FEE_RATE,
) -> Tuple[float, float]:
    """
    Net PnL after a round-trip fee.

    Returns:
        (net_pnl, pnl_percent) where pnl_percent = net_pnl / size × 100
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be > 0, got {entry_price}")
    if position_size <= 0:
        raise ValueError(f"position_size must be > 0, got {position_size}")

    if direction == "long":
        gross = (current_price - entry_price) / entry_price * position_size
    elif direction == "short":
        gross = (entry_price - current_price) / entry_price * position_size
    else:
        raise ValueError(f"Unknown position direction: {direction}")

    fees = position_size * fee_rate * 2
    net = gross - fees
    return net, net / position_size * 100


def apply_price(position: TrendPosition, price: float, fee_rate: float = FEE_RATE) -> None:
    """Write price, PnL and watermarks onto the position."""
    pnl, percent = calculate_position_pnl(
        position.entry_price, price, position.position_size, position.direction, fee_rate
    )
    position.current_price = price
    position.current_pnl = pnl
    position.pnl_percent = percent
    position.highest_price = price if position.highest_price is None else max(position.highest_price, price)
    position.lowest_price = price if position.lowest_price is None else min(position.lowest_price, price)


def check_exit_conditions(
    position: TrendPosition,
    settings: ExitConfig,
    now: float,
) -> Optional[ExitReason]:
    """
    Rule-based part of the cascade (everything but trend reversal).

    Args:
        position: Position with refreshed PnL and watermarks
        settings: Exit thresholds
        now: Current time in epoch ms

    Returns:
        The first matching ExitReason, or None
    """
    if position.pnl_percent >= settings.profit_target_percent:
        return ExitReason.profit_target()

    if position.pnl_percent <= -settings.stop_loss_percent:
        return ExitReason.stop_loss()

    if settings.trailing_stop_enabled:
        if position.direction == "long" and position.highest_price:
            drawdown = (position.highest_price - position.current_price) / position.highest_price * 100
            if drawdown >= settings.trailing_stop_percent:
                return ExitReason.trailing_stop()

        if position.direction == "short" and position.lowest_price:
            drawup = (position.current_price - position.lowest_price) / position.lowest_price * 100
            if drawup >= settings.trailing_stop_percent:
                return ExitReason.trailing_stop()

    if now - position.entry_time >= settings.max_hold_time_hours * MS_PER_HOUR:
        return ExitReason.time_limit()

    return None


def close_position(
    position: TrendPosition,
    reason: ExitReason,
    now: Optional[float] = None,
    fee_rate: float = FEE_RATE,
) -> TrendTrade:
    """
    Build the trade record for an acknowledged exit and mark the position closed.

    The exit is booked at the position's current price.
    """
    now = now_ms() if now is None else now
    try:
        pnl, percent = calculate_position_pnl(
            position.entry_price, position.current_price, position.position_size, position.direction, fee_rate
        )
    except ValueError:
        # Unpriceable entry: book the last known PnL
        pnl, percent = position.current_pnl, position.pnl_percent
    position.status = "closed"

    return TrendTrade(
        id=f"trade-{position.id}",
        market_id=position.market_id,
        market_question=position.market_question,
        direction=position.direction,
        entry_price=position.entry_price,
        exit_price=position.current_price,
        position_size=position.position_size,
        profit=pnl,
        profit_percent=percent,
        fees=position.position_size * fee_rate * 2,
        entry_time=position.entry_time,
        exit_time=now,
        duration_ms=now - position.entry_time,
        exit_reason=str(reason),
    )


class PositionMonitor:
    """
    Per-cycle exit evaluation for open positions.

    Store reads (price and reversal windows) go through a thread pool with a
    per-read timeout when exits.max_workers > 1. A price read that fails,
    times out or returns nothing keeps the last known price; a reversal
    check that fails or times out counts as no reversal.
    """

    def __init__(
        self,
        config: ExitConfig,
        store: PriceHistoryStore,
        reversal_detector: Optional[ReversalDetector] = None,
        fee_rate: float = FEE_RATE,
    ):
        """
        Initialize monitor.

        Args:
            config: Exit thresholds and windows
            store: Price history store (shared with the scanner)
            reversal_detector: Defaults to one reading reversal_window_minutes
            fee_rate: Fee per side
        """
        self.config = config
        self.store = store
        self.reversal_detector = reversal_detector or ReversalDetector(store, config.reversal_window_minutes)
        self.fee_rate = fee_rate

    def monitor(self, positions: List[TrendPosition], now: Optional[float] = None) -> List[ExitDecision]:
        """
        Run one monitoring cycle. Never raises.

        Returns:
            One decision per evaluated position; should_exit=False for
            positions that stay open. Positions whose evaluation failed are
            left out.
        """
        now = now_ms() if now is None else now
        live = [p for p in positions if p.status != "closed"]

        decisions: List[ExitDecision] = []
        pool = ThreadPoolExecutor(max_workers=self.config.max_workers) if self.config.max_workers > 1 else None
        try:
            windows = self._read_price_windows(live, pool)

            for position, window in zip(live, windows):
                try:
                    decisions.append(self.evaluate(position, window, now, pool))
                except Exception as e:
                    logger.warning("position_evaluation_failed", position_id=position.id, error=str(e))
        finally:
            if pool is not None:
                pool.shutdown(wait=False, cancel_futures=True)

        exits = sum(1 for d in decisions if d.should_exit)
        logger.info("monitor_complete", positions=len(live), exits=exits)
        return decisions

    def evaluate(
        self,
        position: TrendPosition,
        window: Optional[List[PriceHistoryPoint]],
        now: float,
        pool: Optional[ThreadPoolExecutor] = None,
    ) -> ExitDecision:
        """
        Refresh one position from `window` (None = stale) and run the cascade.

        When the new price cannot be turned into PnL (e.g. a zero entry price)
        the cascade runs on the last known state, so time_limit still fires.
        """
        if window:
            try:
                apply_price(position, window[-1].price, self.fee_rate)
            except ValueError as e:
                logger.warning("pnl_unavailable", position_id=position.id, error=str(e))
        else:
            logger.debug("stale_price", position_id=position.id, price=position.current_price)

        reason = check_exit_conditions(position, self.config, now)

        if reason is None:
            reversal = self._detect_reversal(position, pool)
            if reversal.reversed and reversal.confidence >= REVERSAL_EXIT_CONFIDENCE:
                reason = ExitReason.trend_reversal(reversal.confidence)

        if reason is None:
            return ExitDecision(position_id=position.id, should_exit=False)

        logger.info(
            "exit_signal",
            position_id=position.id,
            market_id=position.market_id,
            reason=str(reason),
            pnl_percent=round(position.pnl_percent, 2),
        )
        return ExitDecision(position_id=position.id, should_exit=True, reason=reason)

    def _detect_reversal(self, position: TrendPosition, pool: Optional[ThreadPoolExecutor]) -> ReversalSignal:
        """Reversal check under the same timeout as price reads; any failure is no reversal."""
        try:
            if pool is None:
                return self.reversal_detector.detect(position.market_id, position.direction)
            future = pool.submit(self.reversal_detector.detect, position.market_id, position.direction)
            return future.result(timeout=self.config.unit_timeout_sec)
        except FutureTimeout:
            logger.warning("reversal_read_timeout", position_id=position.id)
        except Exception as e:
            logger.warning("reversal_check_failed", position_id=position.id, error=str(e))
        return NO_REVERSAL

    def _read_price_windows(
        self,
        positions: List[TrendPosition],
        pool: Optional[ThreadPoolExecutor] = None,
    ) -> List[Optional[List[PriceHistoryPoint]]]:
        minutes = self.config.price_window_minutes

        if pool is None:
            return [self._read_guarded(p, minutes) for p in positions]

        futures = [(p, pool.submit(self._read_guarded, p, minutes)) for p in positions]
        windows = []
        for position, future in futures:
            try:
                windows.append(future.result(timeout=self.config.unit_timeout_sec))
            except FutureTimeout:
                logger.warning("price_read_timeout", position_id=position.id)
                windows.append(None)
        return windows

    def _read_guarded(self, position: TrendPosition, minutes: float) -> Optional[List[PriceHistoryPoint]]:
        try:
            return self.store.read_window(position.market_id, minutes)
        except Exception as e:
            logger.warning("price_read_failed", position_id=position.id, error=str(e))
            return None
