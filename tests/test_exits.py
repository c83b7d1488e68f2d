"""
Exit engine tests: PnL, cascade order, stale prices, reversal exits.

Run:
    python -m pytest tests/test_exits.py -v
"""

import threading
import time

import pytest

from conftest import NOW, FlakyStore, SlowStore, StaticStore, make_history
from trend_rider.core.config import ExitConfig
from trend_rider.core.models import EXIT_PRIORITY, ExitReason, ReversalSignal, TrendPosition
from trend_rider.risk.exits import (
    MS_PER_HOUR,
    PositionMonitor,
    apply_price,
    calculate_position_pnl,
    check_exit_conditions,
    close_position,
)


def position(pid="p1", market_id="m1", direction="long", entry=0.5, size=100.0, **kw):
    return TrendPosition(
        id=pid,
        market_id=market_id,
        direction=direction,
        entry_price=entry,
        current_price=kw.pop("current", entry),
        position_size=size,
        entry_time=kw.pop("entry_time", NOW),
        **kw,
    )


class StubDetector:
    def __init__(self, signal=None):
        self.signal = signal or ReversalSignal(reversed=False, new_direction=None, confidence=0.0)
        self.calls = []

    def detect(self, market_id, direction):
        self.calls.append((market_id, direction))
        return self.signal


def windows(**prices):
    return StaticStore({m: make_history([p]) for m, p in prices.items()})


class TestPnl:
    def test_long(self):
        pnl, pct = calculate_position_pnl(0.50, 0.60, 100, "long")
        assert pnl == pytest.approx(19.6)
        assert pct == pytest.approx(19.6)

    def test_short(self):
        pnl, pct = calculate_position_pnl(0.50, 0.40, 100, "short")
        assert pnl == pytest.approx(19.6)
        assert pct == pytest.approx(19.6)

    def test_flat_pays_round_trip_fee(self):
        pnl, pct = calculate_position_pnl(0.50, 0.50, 200, "long")
        assert pnl == pytest.approx(-0.8)
        assert pct == pytest.approx(-0.4)

    def test_custom_fee_rate(self):
        pnl, _ = calculate_position_pnl(0.50, 0.60, 100, "long", fee_rate=0.0)
        assert pnl == pytest.approx(20.0)

    @pytest.mark.parametrize(
        "entry,size,direction",
        [(0.0, 100, "long"), (-0.1, 100, "long"), (0.5, 0, "long"), (0.5, 100, "flat")],
    )
    def test_invalid_inputs(self, entry, size, direction):
        with pytest.raises(ValueError):
            calculate_position_pnl(entry, 0.6, size, direction)

    def test_apply_price_seeds_and_moves_watermarks(self):
        pos = position()
        apply_price(pos, 0.55)
        assert (pos.highest_price, pos.lowest_price) == (0.55, 0.55)

        apply_price(pos, 0.45)
        apply_price(pos, 0.50)
        assert (pos.highest_price, pos.lowest_price) == (0.55, 0.45)
        assert pos.current_price == 0.50
        assert pos.current_pnl == pytest.approx(-0.4)


class TestExitConditions:
    def test_nothing_fires(self):
        pos = position()
        apply_price(pos, 0.52)
        assert check_exit_conditions(pos, ExitConfig(), NOW) is None

    def test_profit_target(self):
        pos = position()
        apply_price(pos, 0.60)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.profit_target()

    def test_stop_loss(self):
        pos = position()
        apply_price(pos, 0.44)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.stop_loss()

    def test_trailing_stop_long(self):
        pos = position(entry=0.70, highest_price=0.80, lowest_price=0.70)
        apply_price(pos, 0.70)
        settings = ExitConfig(trailing_stop_percent=10)
        assert check_exit_conditions(pos, settings, NOW) == ExitReason.trailing_stop()

    def test_trailing_stop_short(self):
        pos = position(direction="short", entry=0.45, highest_price=0.45, lowest_price=0.40)
        apply_price(pos, 0.45)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.trailing_stop()

    def test_trailing_stop_disabled(self):
        pos = position(entry=0.70, highest_price=0.80, lowest_price=0.70)
        apply_price(pos, 0.70)
        settings = ExitConfig(trailing_stop_enabled=False)
        assert check_exit_conditions(pos, settings, NOW) is None

    def test_time_limit(self):
        pos = position(entry_time=NOW - 25 * MS_PER_HOUR)
        apply_price(pos, 0.51)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.time_limit()

    def test_time_limit_boundary(self):
        pos = position(entry_time=NOW - 24 * MS_PER_HOUR)
        apply_price(pos, 0.51)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.time_limit()

    def test_profit_target_checked_before_stop_loss(self):
        # Thresholds that overlap: 8% is both >= 5 and <= -(-10)
        pos = position()
        pos.pnl_percent = 8.0
        settings = ExitConfig(profit_target_percent=5, stop_loss_percent=-10)
        assert check_exit_conditions(pos, settings, NOW) == ExitReason.profit_target()

    def test_stop_loss_beats_time_limit(self):
        pos = position(entry_time=NOW - 48 * MS_PER_HOUR)
        apply_price(pos, 0.40)
        assert check_exit_conditions(pos, ExitConfig(), NOW) == ExitReason.stop_loss()


class TestPositionMonitor:
    def test_refreshes_position(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.55), StubDetector())
        pos = position()

        [decision] = monitor.monitor([pos], now=NOW)

        assert decision.should_exit is False
        assert decision.reason is None
        assert pos.current_price == 0.55
        assert pos.current_pnl == pytest.approx(9.6)
        assert pos.highest_price == 0.55

    def test_profit_exit(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.60), StubDetector())
        [decision] = monitor.monitor([position()], now=NOW)
        assert decision.should_exit is True
        assert decision.reason.kind == "profit_target"

    def test_monitor_never_changes_status(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.60), StubDetector())
        pos = position()
        monitor.monitor([pos], now=NOW)
        assert pos.status == "open"

    def test_failed_read_keeps_last_price(self):
        store = FlakyStore(failing={"m1"}, clock=lambda: NOW)
        monitor = PositionMonitor(ExitConfig(), store, StubDetector())
        pos = position(current=0.52, current_pnl=3.6, pnl_percent=3.6)

        [decision] = monitor.monitor([pos], now=NOW)

        assert decision.should_exit is False
        assert pos.current_price == 0.52
        assert pos.current_pnl == 3.6

    def test_empty_window_keeps_last_price(self):
        monitor = PositionMonitor(ExitConfig(), StaticStore({}), StubDetector())
        pos = position(current=0.52)
        [decision] = monitor.monitor([pos], now=NOW)
        assert decision.should_exit is False
        assert pos.current_price == 0.52

    def test_stale_position_can_still_time_out(self):
        monitor = PositionMonitor(ExitConfig(), StaticStore({}), StubDetector())
        pos = position(entry_time=NOW - 30 * MS_PER_HOUR)
        [decision] = monitor.monitor([pos], now=NOW)
        assert decision.reason == ExitReason.time_limit()

    def test_reversal_exit(self):
        detector = StubDetector(ReversalSignal(reversed=True, new_direction="bearish", confidence=75.0))
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.51), detector)

        [decision] = monitor.monitor([position()], now=NOW)

        assert decision.should_exit is True
        assert decision.reason == ExitReason.trend_reversal(75)
        assert str(decision.reason) == "trend_reversal (75% confidence)"
        assert detector.calls == [("m1", "long")]

    def test_weak_reversal_is_ignored(self):
        detector = StubDetector(ReversalSignal(reversed=True, new_direction="bearish", confidence=50.0))
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.51), detector)
        [decision] = monitor.monitor([position()], now=NOW)
        assert decision.should_exit is False

    def test_reversal_not_consulted_when_rule_fires(self):
        detector = StubDetector(ReversalSignal(reversed=True, new_direction="bearish", confidence=100.0))
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.60), detector)
        [decision] = monitor.monitor([position()], now=NOW)
        assert decision.reason.kind == "profit_target"
        assert detector.calls == []

    def test_closed_positions_skipped(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.60, m2=0.60), StubDetector())
        closed = position("p1", "m1", status="closed")
        closing = position("p2", "m2", status="closing")

        decisions = monitor.monitor([closed, closing], now=NOW)

        assert [d.position_id for d in decisions] == ["p2"]
        assert closed.current_price == 0.5

    def test_failing_position_is_isolated(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.51, m2=0.60), StubDetector())
        broken = position("bad", "m1", entry_time=None)
        healthy = position("good", "m2")

        decisions = monitor.monitor([broken, healthy], now=NOW)

        assert [d.position_id for d in decisions] == ["good"]
        assert decisions[0].should_exit is True

    def test_unpriceable_position_still_times_out(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.30), StubDetector())
        pos = position(entry=0.0, entry_time=NOW - 48 * MS_PER_HOUR)

        [decision] = monitor.monitor([pos], now=NOW)

        assert decision.reason == ExitReason.time_limit()
        assert pos.current_price == 0.0

    def test_unpriceable_position_stays_open_before_time_limit(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.30), StubDetector())
        [decision] = monitor.monitor([position(entry=0.0)], now=NOW)
        assert decision.should_exit is False

    def test_failing_detector_is_no_reversal(self):
        class BrokenDetector:
            def detect(self, market_id, direction):
                raise ConnectionError("store unavailable")

        monitor = PositionMonitor(ExitConfig(), windows(m1=0.51), BrokenDetector())
        [decision] = monitor.monitor([position()], now=NOW)
        assert decision.should_exit is False


class TestMonitorTimeouts:
    def test_slow_price_read_keeps_last_price(self):
        store = SlowStore(slow={"m1"}, clock=lambda: NOW)
        store.append("m1", 0.30, 100, NOW)
        store.append("m2", 0.60, 100, NOW)
        monitor = PositionMonitor(ExitConfig(max_workers=2, unit_timeout_sec=0.05), store, StubDetector())
        slow = position("p1", "m1", current=0.52)
        fast = position("p2", "m2")

        try:
            decisions = monitor.monitor([slow, fast], now=NOW)
        finally:
            store.release.set()

        assert [(d.position_id, d.should_exit) for d in decisions] == [("p1", False), ("p2", True)]
        # 0.30 would have been a stop loss
        assert slow.current_price == 0.52

    def test_slow_reversal_read_is_bounded(self):
        store = SlowStore(slow={"m1"}, clock=lambda: NOW)
        monitor = PositionMonitor(ExitConfig(max_workers=2, unit_timeout_sec=0.05), store)

        start = time.monotonic()
        try:
            [decision] = monitor.monitor([position(current=0.52)], now=NOW)
        finally:
            store.release.set()
        elapsed = time.monotonic() - start

        assert decision.should_exit is False
        assert elapsed < 2.0

    def test_slow_detector_is_no_reversal(self):
        release = threading.Event()

        class SlowDetector:
            def detect(self, market_id, direction):
                release.wait(5)
                return ReversalSignal(reversed=True, new_direction="bearish", confidence=100.0)

        monitor = PositionMonitor(
            ExitConfig(max_workers=2, unit_timeout_sec=0.05), windows(m1=0.51), SlowDetector()
        )
        try:
            [decision] = monitor.monitor([position()], now=NOW)
        finally:
            release.set()

        assert decision.should_exit is False

    def test_parallel_reads(self):
        store = FlakyStore(failing={"m2"}, clock=lambda: NOW)
        store.append("m1", 0.60, 100, NOW)
        store.append("m3", 0.52, 100, NOW)
        monitor = PositionMonitor(ExitConfig(max_workers=3), store, StubDetector())
        positions = [position("p1", "m1"), position("p2", "m2"), position("p3", "m3")]

        decisions = monitor.monitor(positions, now=NOW)

        assert [d.should_exit for d in decisions] == [True, False, False]
        assert positions[1].current_price == 0.5
        assert positions[2].current_price == 0.52

    def test_default_detector_reads_store(self):
        monitor = PositionMonitor(ExitConfig(), windows(m1=0.51))
        [decision] = monitor.monitor([position()], now=NOW)
        assert decision.should_exit is False


class TestClosePosition:
    def test_trade_record(self):
        pos = position(market_question="Will BTC hit 100k?", entry_time=NOW - 60_000)
        apply_price(pos, 0.60)

        trade = close_position(pos, ExitReason.profit_target(), now=NOW)

        assert pos.status == "closed"
        assert trade.id == "trade-p1"
        assert trade.market_question == "Will BTC hit 100k?"
        assert trade.exit_price == 0.60
        assert trade.profit == pytest.approx(19.6)
        assert trade.profit_percent == pytest.approx(19.6)
        assert trade.fees == pytest.approx(0.4)
        assert trade.duration_ms == 60_000
        assert trade.exit_reason == "profit_target"

    def test_reversal_reason_text(self):
        pos = position()
        trade = close_position(pos, ExitReason.trend_reversal(100), now=NOW)
        assert trade.exit_reason == "trend_reversal (100% confidence)"

    def test_unpriceable_entry_books_last_known_pnl(self):
        pos = position(entry=0.0, current_pnl=-1.5, pnl_percent=-1.5)
        trade = close_position(pos, ExitReason.time_limit(), now=NOW)
        assert pos.status == "closed"
        assert trade.profit == -1.5
        assert trade.exit_reason == "time_limit"


class TestExitReason:
    def test_confidence_only_for_reversal(self):
        with pytest.raises(ValueError):
            ExitReason("trend_reversal")
        with pytest.raises(ValueError):
            ExitReason("stop_loss", 50.0)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            ExitReason("margin_call")

    def test_priority_order(self):
        reasons = [
            ExitReason.trend_reversal(80),
            ExitReason.time_limit(),
            ExitReason.profit_target(),
            ExitReason.trailing_stop(),
            ExitReason.stop_loss(),
        ]
        ordered = sorted(reasons, key=lambda r: r.priority)
        assert tuple(r.kind for r in ordered) == EXIT_PRIORITY
