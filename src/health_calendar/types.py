"""Shared type aliases and typed dictionaries."""

from __future__ import annotations

from typing import TypeAlias, TypedDict

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
JSONObject: TypeAlias = dict[str, JSONValue]


class CacheStats(TypedDict):
    """Result cache statistics payload."""

    size: int
    hits: int
    misses: int
    hit_rate_pct: float


class LedgerStats(TypedDict):
    """Sync ledger statistics payload."""

    entries: int
    total_records: int
    synced_days: int
    syncing: bool
