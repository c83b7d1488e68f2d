"""
Configuration management for the trend rider core.

Scan, filter, exit, sizing and guard parameters for the momentum scanner
and the position monitor. Supports loading from YAML/dict and environment
variable overrides.
"""

import os
from dataclasses import dataclass, field, fields, is_dataclass
from typing import List, Literal

# Polymarket taker fee per side
FEE_RATE = 0.002
MIN_VOLUME_FOR_RELIABLE_TREND = 1000.0
TREND_CONFIRMATION_THRESHOLD = 3
REVERSAL_EXIT_CONFIDENCE = 75.0

GAMMA_API_URL = "https://gamma-api.polymarket.com"


@dataclass
class MarketFilters:
    """Per-market filters applied before a tick is recorded."""

    search_query: str = ""  # Substring of the market question
    category: str = "all"  # Single category, "all" = no filter
    min_volume: float = MIN_VOLUME_FOR_RELIABLE_TREND  # 0 disables
    max_spread: float = 0.0  # |yes + no - 1|, 0 disables
    min_liquidity: float = 0.0  # 0 disables
    category_whitelist: List[str] = field(default_factory=list)  # Empty = all


@dataclass
class ScanConfig:
    """Momentum scan parameters."""

    min_momentum_percent: float = 5.0  # Gate on |volume-weighted momentum|
    window_minutes: int = 15  # Rolling window: 5, 10, 15 or 60
    market_limit: int = 100  # Markets pulled per cycle
    max_workers: int = 1  # >1 fans out per-market work on a thread pool
    unit_timeout_sec: float = 10.0  # Per-market timeout when fanned out


@dataclass
class ExitConfig:
    """Exit cascade thresholds."""

    profit_target_percent: float = 15.0
    stop_loss_percent: float = 10.0
    trailing_stop_enabled: bool = True
    trailing_stop_percent: float = 5.0
    max_hold_time_hours: float = 24.0
    price_window_minutes: int = 5  # Window read for the latest price
    reversal_window_minutes: int = 5  # Window read by the reversal detector
    max_workers: int = 1
    unit_timeout_sec: float = 10.0


@dataclass
class SizingConfig:
    """Position sizing parameters."""

    position_size: float = 50.0  # Base size in USD for "fixed" mode
    position_size_mode: Literal["fixed", "percent"] = "fixed"
    position_size_percent: float = 5.0  # % of capital for "percent" mode
    total_capital: float = 1000.0
    max_concurrent_positions: int = 3


@dataclass
class GuardConfig:
    """Daily loss limit and post-loss cooldown."""

    daily_loss_limit: float = 50.0  # USD, realised since UTC midnight
    cooldown_enabled: bool = True
    cooldown_minutes: int = 30


@dataclass
class SchedulerConfig:
    """Cycle cadence."""

    scan_interval_sec: int = 60  # 30, 60 or 120
    monitor_interval_sec: int = 30


@dataclass
class MonitoringConfig:
    """Logging."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_logs: bool = False


@dataclass
class GammaConfig:
    """Polymarket Gamma API settings."""

    api_url: str = GAMMA_API_URL
    timeout_sec: float = 10.0


def _build(dc_type, data):
    if not is_dataclass(dc_type) or not isinstance(data, dict):
        return data
    kwargs = {}
    for f in fields(dc_type):
        if f.name in data:
            val = data[f.name]
            default_val = f.default_factory() if callable(f.default_factory) else None
            if is_dataclass(default_val):
                kwargs[f.name] = _build(type(default_val), val)
            else:
                kwargs[f.name] = val
    return dc_type(**kwargs)


@dataclass
class Config:
    """
    Complete trend rider configuration.

    Environment variables (override config file):
    - TR_GAMMA_API_URL: Gamma API base URL
    - TR_LOG_LEVEL: DEBUG/INFO/WARNING/ERROR
    - TR_MIN_MOMENTUM: minimum momentum percent
    - TR_WINDOW_MINUTES: scan window in minutes
    """

    scan: ScanConfig = field(default_factory=ScanConfig)
    filters: MarketFilters = field(default_factory=MarketFilters)
    exits: ExitConfig = field(default_factory=ExitConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    guards: GuardConfig = field(default_factory=GuardConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    gamma: GammaConfig = field(default_factory=GammaConfig)

    def __post_init__(self):
        """Load environment variable overrides."""
        if os.getenv("TR_GAMMA_API_URL"):
            self.gamma.api_url = os.getenv("TR_GAMMA_API_URL", GAMMA_API_URL)

        if os.getenv("TR_LOG_LEVEL"):
            self.monitoring.log_level = os.getenv("TR_LOG_LEVEL", "INFO").upper()

        if os.getenv("TR_MIN_MOMENTUM"):
            self.scan.min_momentum_percent = float(os.getenv("TR_MIN_MOMENTUM", "5"))

        if os.getenv("TR_WINDOW_MINUTES"):
            self.scan.window_minutes = int(os.getenv("TR_WINDOW_MINUTES", "15"))

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load config from YAML file."""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return _build(cls, data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Load config from dictionary."""
        return _build(cls, data)

    def validate(self) -> list[str]:
        """
        Validate configuration parameters.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.scan.window_minutes not in (5, 10, 15, 60):
            errors.append("scan.window_minutes must be one of 5, 10, 15, 60")

        if self.scan.min_momentum_percent <= 0:
            errors.append("scan.min_momentum_percent must be > 0")

        if self.scan.max_workers < 1 or self.exits.max_workers < 1:
            errors.append("max_workers must be >= 1")

        if self.scheduler.scan_interval_sec not in (30, 60, 120):
            errors.append("scheduler.scan_interval_sec must be one of 30, 60, 120")

        if self.scheduler.monitor_interval_sec <= 0:
            errors.append("scheduler.monitor_interval_sec must be > 0")

        if self.exits.profit_target_percent <= 0:
            errors.append("exits.profit_target_percent must be > 0")

        if self.exits.stop_loss_percent <= 0:
            errors.append("exits.stop_loss_percent must be > 0")

        if self.exits.trailing_stop_enabled and self.exits.trailing_stop_percent <= 0:
            errors.append("exits.trailing_stop_percent must be > 0 when trailing stop is enabled")

        if self.exits.max_hold_time_hours <= 0:
            errors.append("exits.max_hold_time_hours must be > 0")

        if self.sizing.position_size_mode not in ("fixed", "percent"):
            errors.append("sizing.position_size_mode must be 'fixed' or 'percent'")

        if self.sizing.total_capital <= 0:
            errors.append("sizing.total_capital must be > 0")

        if not (0 < self.sizing.position_size_percent <= 100):
            errors.append("sizing.position_size_percent must be in (0, 100]")

        if self.sizing.max_concurrent_positions < 1:
            errors.append("sizing.max_concurrent_positions must be >= 1")

        if self.guards.daily_loss_limit <= 0:
            errors.append("guards.daily_loss_limit must be > 0")

        return errors
