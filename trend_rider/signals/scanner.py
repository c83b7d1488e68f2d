"""
Momentum Scanner

Per cycle: pull market snapshots, filter, record the tick, read back the
rolling window, score volume-weighted momentum and trend indicators, and
emit ranked opportunities that pass the momentum/confirmation gate.
"""

import json
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from functools import cmp_to_key
from typing import List, Optional, Tuple

import structlog

from trend_rider.core.config import Config, MarketFilters
from trend_rider.core.models import InstrumentSnapshot, MarketSnapshot, MomentumOpportunity
from trend_rider.data.history import now_ms
from trend_rider.data.ports import PriceHistoryStore, SnapshotProvider
from trend_rider.signals.indicators import calculate_trend_indicators, volume_weighted_momentum
from trend_rider.signals.macd_state import MacdTracker

logger = structlog.get_logger(__name__)

CATEGORY_KEYWORDS = (
    ("Crypto", ("bitcoin", "btc", "ethereum", "eth", "crypto")),
    ("Politics", ("election", "trump", "biden", "political")),
    ("Economics", ("fed", "rate", "inflation", "economy")),
    ("Stocks", ("nvidia", "apple", "stock", "tesla")),
    ("Sports", ("sports", "nfl", "nba")),
)


def extract_category(question: str) -> str:
    """Keyword classification of a market question."""
    lower_q = (question or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in lower_q for k in keywords):
            return category
    return "Other"


def market_category(snapshot: InstrumentSnapshot) -> str:
    category = extract_category(snapshot.question)
    if category == "Other" and snapshot.category:
        return snapshot.category
    return category


def parse_outcome_prices(raw) -> Optional[Tuple[float, float]]:
    """
    Parse the (yes, no) price pair.

    Accepts a list of numbers/strings or a JSON-encoded list. Returns None
    when fewer than two finite prices are present.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    try:
        yes_price, no_price = float(raw[0]), float(raw[1])
    except (TypeError, ValueError):
        return None
    if yes_price != yes_price or no_price != no_price:
        return None
    return yes_price, no_price


def passes_filters(
    snapshot: InstrumentSnapshot,
    spread: float,
    category: str,
    filters: MarketFilters,
) -> bool:
    """Volume floor, spread ceiling, liquidity floor, search and category filters."""
    if filters.min_volume > 0 and snapshot.volume < filters.min_volume:
        return False

    if filters.max_spread > 0 and spread > filters.max_spread:
        return False

    if filters.min_liquidity > 0 and snapshot.liquidity < filters.min_liquidity:
        return False

    if filters.search_query and filters.search_query.lower() not in snapshot.question.lower():
        return False

    wanted = (filters.category or "").lower()
    if wanted and wanted != "all" and wanted not in category.lower():
        return False

    if filters.category_whitelist:
        if not any(
            cat.lower() == "all" or cat.lower() in category.lower()
            for cat in filters.category_whitelist
        ):
            return False

    return True


def _weighted_strength(opp: MomentumOpportunity) -> float:
    return opp.strength * (1.5 if opp.indicators.confirmed else 1)


def _compare(a: MomentumOpportunity, b: MomentumOpportunity) -> float:
    # Kept literally: b's weighted strength minus a's.
    return _weighted_strength(b) - _weighted_strength(a)


def rank_opportunities(opportunities: List[MomentumOpportunity]) -> List[MomentumOpportunity]:
    """Order opportunities by weighted strength, strongest first; ties keep input order."""
    return sorted(opportunities, key=cmp_to_key(_compare))


class MomentumScanner:
    """
    Volume-weighted momentum scan with trend confirmation.

    1. Parse the two-outcome price pair (skip if unparsable)
    2. Apply market filters
    3. Append the tick to the price history store
    4. Read back the rolling window (skip if < 2 points)
    5. Volume-weighted momentum + indicators
    6. Gate on |momentum| >= min_momentum_percent and confirmation
    """

    def __init__(
        self,
        config: Config,
        store: PriceHistoryStore,
        provider: SnapshotProvider,
        tracker: Optional[MacdTracker] = None,
    ):
        """
        Initialize scanner.

        Args:
            config: System configuration
            store: Price history store (shared with the monitor)
            provider: Market snapshot source
            tracker: Incremental MACD state; a fresh one is created if omitted
        """
        self.config = config
        self.store = store
        self.provider = provider
        self.tracker = tracker if tracker is not None else MacdTracker()

    def scan(
        self,
        filters: Optional[MarketFilters] = None,
        now: Optional[float] = None,
    ) -> List[MomentumOpportunity]:
        """
        Run one scan cycle. Never raises.

        Args:
            filters: Market filters; None disables filtering
            now: Cycle timestamp in epoch ms (defaults to wall clock)

        Returns:
            Ranked opportunities (possibly empty)
        """
        now = now_ms() if now is None else now

        try:
            snapshots = self.provider.fetch_snapshots()
        except Exception as e:
            logger.warning("snapshot_fetch_failed", error=str(e))
            return []

        # Markets that left the feed drop their MACD state
        self.tracker.retain(s.id for s in snapshots)

        if self.config.scan.max_workers > 1:
            results = self._scan_parallel(snapshots, filters, now)
        else:
            results = [self._scan_guarded(s, filters, now) for s in snapshots]

        opportunities = rank_opportunities([o for o in results if o is not None])
        logger.info(
            "scan_complete",
            markets=len(snapshots),
            opportunities=len(opportunities),
            window_minutes=self.config.scan.window_minutes,
        )
        return opportunities

    def _scan_parallel(self, snapshots, filters, now) -> List[Optional[MomentumOpportunity]]:
        pool = ThreadPoolExecutor(max_workers=self.config.scan.max_workers)
        try:
            futures = [(s, pool.submit(self._scan_guarded, s, filters, now)) for s in snapshots]
            results = []
            for snapshot, future in futures:
                try:
                    results.append(future.result(timeout=self.config.scan.unit_timeout_sec))
                except FutureTimeout:
                    # No data in time: no opportunity for this market
                    logger.warning("market_scan_timeout", market_id=snapshot.id)
                    results.append(None)
            return results
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _scan_guarded(self, snapshot, filters, now) -> Optional[MomentumOpportunity]:
        try:
            return self.scan_market(snapshot, filters, now)
        except Exception as e:
            logger.warning("market_scan_failed", market_id=getattr(snapshot, "id", None), error=str(e))
            return None

    def scan_market(
        self,
        snapshot: InstrumentSnapshot,
        filters: Optional[MarketFilters],
        now: float,
    ) -> Optional[MomentumOpportunity]:
        """
        Evaluate one market. Store errors propagate to the caller.

        Returns:
            MomentumOpportunity if the gate passes, else None
        """
        prices = parse_outcome_prices(snapshot.outcome_prices)
        if prices is None:
            return None
        yes_price, no_price = prices
        # Resolved markets quote 0; no position can be priced from it
        if yes_price <= 0:
            return None

        spread = abs(yes_price + no_price - 1.0)
        category = market_category(snapshot)

        if filters is not None and not passes_filters(snapshot, spread, category, filters):
            return None

        self.store.append(snapshot.id, yes_price, snapshot.volume or 0.0, now)

        history = self.store.read_window(snapshot.id, self.config.scan.window_minutes)
        if len(history) < 2:
            return None

        momentum = volume_weighted_momentum(history)
        macd_pair = self.tracker.update(snapshot.id, history)
        indicators = calculate_trend_indicators(history, macd_pair=macd_pair)

        strength = abs(momentum)
        if strength < self.config.scan.min_momentum_percent or not indicators.confirmed:
            return None

        previous_price = history[0].price
        price_change = yes_price - previous_price
        price_change_percent = price_change / previous_price * 100 if previous_price else 0.0

        logger.debug(
            "momentum_detected",
            market_id=snapshot.id,
            momentum=round(momentum, 4),
            score=indicators.confirmation_score,
        )

        return MomentumOpportunity(
            id=f"momentum-{snapshot.id}-{int(now)}",
            market=MarketSnapshot(
                id=snapshot.id,
                question=snapshot.question,
                current_price=yes_price,
                previous_price=previous_price,
                price_change=price_change,
                price_change_percent=price_change_percent,
                velocity=momentum,
                volume=snapshot.volume,
                spread=spread,
                category=category,
                token_id=snapshot.token_id,
            ),
            direction="bullish" if momentum > 0 else "bearish",
            strength=strength,
            timestamp=now,
            indicators=indicators,
            trend_confirmed=indicators.confirmed,
            volume_trend=indicators.volume_trend,
        )
