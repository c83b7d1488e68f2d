"""Core system components: config, data model, scheduler."""

from trend_rider.core.config import Config
from trend_rider.core.scheduler import Scheduler

__all__ = [
    "Config",
    "Scheduler",
]
