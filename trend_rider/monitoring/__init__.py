"""Monitoring: logging setup, trade metrics, kill switch."""

from trend_rider.monitoring.kill_switch import KillSwitch
from trend_rider.monitoring.log_setup import configure_logging
from trend_rider.monitoring.metrics import MetricsCollector, TrendRiderMetrics

__all__ = ["KillSwitch", "configure_logging", "MetricsCollector", "TrendRiderMetrics"]
