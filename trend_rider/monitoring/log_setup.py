"""
Logging setup.

Components log structured events via structlog.get_logger(__name__);
configure_logging() picks the renderer and level once at startup.
"""

import logging

import structlog

from trend_rider.core.config import MonitoringConfig


def configure_logging(config: MonitoringConfig) -> None:
    """Console (or JSON) rendering filtered at config.log_level."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = structlog.processors.JSONRenderer() if config.json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
