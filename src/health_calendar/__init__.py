"""Health statistics and idempotent calendar sync.

Reduces time-stamped health samples (exported by the Health Auto Export iOS
app) into per-period statistics and zero-filled chart series, and projects
chosen date ranges into calendar records exactly once, keeping a ledger so
every sync can be undone.

Modules:
    categories: Catalog of metric categories and their aggregation kinds
    stats: Per-period statistics
    charts: Hourly and daily chart series
    ledger: Idempotent sync, preview and undo of calendar records
    service: Long-lived facade owning the cache and ledger

Example:
    Sync one week of data into the calendar::

        $ health-calendar --export export.json sync --start 2024-01-01 --end 2024-01-07
"""

__version__ = "0.1.0"

from .categories import AggregationKind, Category, CategoryRegistry
from .config import Settings, get_settings
from .service import HealthCalendarService

__all__ = [
    "AggregationKind",
    "Category",
    "CategoryRegistry",
    "HealthCalendarService",
    "Settings",
    "get_settings",
    "__version__",
]
