"""Prometheus metrics definitions for health-calendar."""

from prometheus_client import Counter, Gauge

# -- Result cache --
CACHE_HITS = Counter(
    "health_calendar_cache_hits_total",
    "Total session cache hits",
)
CACHE_MISSES = Counter(
    "health_calendar_cache_misses_total",
    "Total session cache misses",
)

# -- Sample source --
SOURCE_QUERY_FAILURES = Counter(
    "health_calendar_source_query_failures_total",
    "Sample source queries degraded to an empty result",
    ["category"],
)

# -- Calendar records --
RECORDS_CREATED = Counter(
    "health_calendar_records_created_total",
    "Total calendar records created",
)
RECORDS_FAILED = Counter(
    "health_calendar_records_failed_total",
    "Total calendar record operations that failed",
    ["operation"],
)
RECORDS_DELETED = Counter(
    "health_calendar_records_deleted_total",
    "Total calendar records deleted",
)

# -- Ledger --
LEDGER_ENTRIES = Gauge(
    "health_calendar_ledger_entries",
    "Current number of synced ranges in the ledger",
)
