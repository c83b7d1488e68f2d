"""
Scheduler: Triggers scan and monitor cycles at fixed intervals.

The two cycles are independent: each has its own interval and a failure in
one never stops or delays the other.
"""

import time
from typing import Callable, Dict

import structlog

from trend_rider.core.config import Config

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Fixed-interval cycle scheduler.

    - scan: every scheduler.scan_interval_sec
    - monitor: every scheduler.monitor_interval_sec

    Both are due immediately on start.
    """

    def __init__(
        self,
        config: Config,
        scan_callback: Callable[[], None],
        monitor_callback: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize scheduler.

        Args:
            config: System configuration
            scan_callback: Runs one scan cycle
            monitor_callback: Runs one monitor cycle
            clock: Monotonic seconds
            sleep: Blocking sleep
        """
        self.config = config
        self.callbacks: Dict[str, Callable[[], None]] = {
            "scan": scan_callback,
            "monitor": monitor_callback,
        }
        self.intervals: Dict[str, float] = {
            "scan": float(config.scheduler.scan_interval_sec),
            "monitor": float(config.scheduler.monitor_interval_sec),
        }
        self.clock = clock
        self.sleep = sleep
        self.running = False
        self.next_due: Dict[str, float] = {name: 0.0 for name in self.callbacks}
        self.runs: Dict[str, int] = {name: 0 for name in self.callbacks}

    def seconds_until_next_cycle(self) -> float:
        """Seconds until the earliest due cycle."""
        now = self.clock()
        return max(0.0, min(self.next_due.values()) - now)

    def run_pending(self) -> list:
        """
        Run every cycle that is due.

        Returns:
            Names of the cycles that ran
        """
        ran = []
        for name, callback in self.callbacks.items():
            now = self.clock()
            if now < self.next_due[name]:
                continue

            self.next_due[name] = now + self.intervals[name]
            try:
                callback()
            except Exception as e:
                # Continue running despite errors
                logger.exception("cycle_failed", cycle=name, error=str(e))
            self.runs[name] += 1
            ran.append(name)
        return ran

    def run_forever(self):
        """
        Run scheduler loop indefinitely.

        Blocks until stopped.
        """
        self.running = True
        logger.info("scheduler_started", intervals=self.intervals)

        while self.running:
            try:
                self.run_pending()
                self.sleep(min(self.seconds_until_next_cycle(), 1.0))

            except KeyboardInterrupt:
                logger.info("scheduler_interrupted")
                self.running = False
                break

    def stop(self):
        """Stop the scheduler loop."""
        logger.info("scheduler_stopping")
        self.running = False
