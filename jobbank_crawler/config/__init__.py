"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserConfig,
    CrawlerConfig,
    EngineKind,
    ListingConfig,
    ListingSelectors,
    PersistenceConfig,
    ScheduleConfig,
    WorkerPoolConfig,
)

__all__ = [
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "CrawlerConfig",
    "EngineKind",
    "ListingConfig",
    "ListingSelectors",
    "PersistenceConfig",
    "ScheduleConfig",
    "WorkerPoolConfig",
]
