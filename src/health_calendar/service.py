"""Long-lived facade owning the category registry, result cache and sync ledger."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, date, datetime, tzinfo
from typing import TypeVar

import structlog

from .cache import ResultCache, cache_key
from .categories import Category, CategoryRegistry
from .charts import HOURS_PER_DAY, ChartBinner
from .dates import (
    TimeRange,
    add_hours,
    day_of,
    days_in_range,
    localize,
    month_interval,
    start_of_day,
)
from .errors import HealthCalendarError
from .interfaces import KeyValueStore, RecordSink, SampleSource, TextSummaryService
from .ledger import DEFAULT_LEDGER_KEY, SyncLedger
from .models import (
    ChartPoint,
    DeletionOutcome,
    PeriodStats,
    PeriodSummary,
    PreviewRecord,
    SummaryRow,
    SyncedRange,
    SyncOutcome,
)
from .sampling import fetch_samples
from .stats import StatsReducer

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_CHART_RANGE = TimeRange.TWO_WEEKS


async def gather_all(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Await every item, then raise the first failure if any.

    Unlike a plain ``gather``, results are reported only once every task
    has completed or failed.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results  # type: ignore[return-value]


class HealthCalendarService:
    """Statistics, charts and calendar sync for one user session.

    Owns the session cache and the sync ledger. Call ``start()`` once
    before using ledger operations so persisted history is restored.
    """

    def __init__(
        self,
        source: SampleSource,
        store: KeyValueStore,
        sink: RecordSink | None = None,
        *,
        registry: CategoryRegistry | None = None,
        tz: tzinfo = UTC,
        ledger_key: str = DEFAULT_LEDGER_KEY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            source: Where health samples come from.
            store: Key-value store the ledger is persisted in.
            sink: Calendar record sink; required only for sync and delete.
            registry: Category catalog, the default 30 categories if omitted.
            tz: Timezone that defines calendar days.
            ledger_key: Key the ledger blob is stored under.
            clock: Returns "now"; defaults to the current time in ``tz``.
        """
        self._source = source
        self._sink = sink
        self._registry = registry or CategoryRegistry()
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._cache = ResultCache()
        self._reducer = StatsReducer(tz)
        self._binner = ChartBinner(tz)
        self._ledger = SyncLedger(store, key=ledger_key, tz=tz, clock=self._clock)

    @property
    def registry(self) -> CategoryRegistry:
        return self._registry

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def ledger(self) -> SyncLedger:
        return self._ledger

    async def start(self) -> None:
        """Restore the persisted ledger."""
        await self._ledger.restore()

    def _resolve(self, category: Category | str) -> Category:
        if isinstance(category, Category):
            return category
        return self._registry.get(category)

    def _now(self) -> datetime:
        return localize(self._clock(), self._tz)

    # Statistics

    async def get_period_stats(
        self, category: Category | str, start: date | datetime, end: date | datetime
    ) -> PeriodStats | None:
        """Stats for ``[start, end)``, with ``end`` clamped to now.

        Results are cached for the session; a failed source query is not.
        """
        cat = self._resolve(category)
        start_dt = localize(start, self._tz)
        requested_end = localize(end, self._tz)
        end_dt = min(requested_end, self._now())
        if end_dt <= start_dt:
            return None

        # Keyed on the requested window; clamped ends of different windows can collide
        key = cache_key(cat.name, start_dt, requested_end, self._tz)
        cached = self._cache.get(key)
        if isinstance(cached, PeriodStats):
            return cached

        fetched = await fetch_samples(self._source, cat, start_dt, end_dt)
        stats = self._reducer.reduce(cat, fetched.samples, start_dt, end_dt)
        if stats is not None and not fetched.failed:
            self._cache.put(key, stats)
        return stats

    async def get_monthly_stats(
        self, category: Category | str, month: date | datetime
    ) -> PeriodStats | None:
        """Stats for the calendar month containing ``month``."""
        start, end = month_interval(month, self._tz)
        return await self.get_period_stats(category, start, end)

    async def get_all_period_stats(
        self, start: date | datetime, end: date | datetime
    ) -> dict[str, PeriodStats]:
        """Stats for every category with data, in registry order."""
        categories = list(self._registry)
        results = await gather_all(self.get_period_stats(c, start, end) for c in categories)
        return {c.name: stats for c, stats in zip(categories, results) if stats is not None}

    # Charts

    async def get_chart_data(
        self,
        category: Category | str,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        hourly: bool | None = None,
    ) -> list[ChartPoint]:
        """Zero-filled series for a window, the trailing two weeks by default.

        When ``hourly`` is None it is derived from the window: at most one
        calendar day gives 24 hourly points, anything longer one point per
        day.
        """
        cat = self._resolve(category)
        if start is None or end is None:
            start, end = DEFAULT_CHART_RANGE.window(self._now(), self._tz)
        start_dt = localize(start, self._tz)
        end_dt = localize(end, self._tz)
        if hourly is None:
            hourly = days_in_range(start_dt, end_dt, self._tz) <= 1

        key = cache_key(cat.name, start_dt, end_dt, self._tz, hourly=hourly)
        cached = self._cache.get(key)
        if isinstance(cached, tuple):
            return list(cached)

        if hourly:
            fetch_start = start_of_day(start_dt, self._tz)
            fetch_end = add_hours(fetch_start, HOURS_PER_DAY, self._tz)
        else:
            fetch_start, fetch_end = start_of_day(start_dt, self._tz), end_dt

        fetched = await fetch_samples(self._source, cat, fetch_start, fetch_end)
        points = self._binner.bin(cat, fetched.samples, start_dt, end_dt, hourly)
        if not fetched.failed:
            self._cache.put(key, tuple(points))
        return points

    # Calendar-day views

    async def _days_by_category(
        self, start: date | datetime, end: date | datetime
    ) -> list[tuple[Category, set[date]]]:
        start_dt = localize(start, self._tz)
        end_dt = localize(end, self._tz)
        categories = list(self._registry)
        fetches = await gather_all(
            fetch_samples(self._source, c, start_dt, end_dt, daily_totals=True)
            for c in categories
        )
        return [
            (fetch.category, {day_of(s.start_time, self._tz) for s in fetch.samples})
            for fetch in fetches
        ]

    async def get_days_with_data(self, start: date | datetime, end: date | datetime) -> set[date]:
        """Calendar days in ``[start, end)`` with data in any category."""
        days: set[date] = set()
        for _, category_days in await self._days_by_category(start, end):
            days |= category_days
        return days

    async def get_days_with_data_and_emojis(
        self, start: date | datetime, end: date | datetime
    ) -> dict[date, list[str]]:
        """Emoji of every category with data, per day, in registry order."""
        emojis: dict[date, list[str]] = {}
        for category, category_days in await self._days_by_category(start, end):
            for day in category_days:
                day_emojis = emojis.setdefault(day, [])
                if category.emoji not in day_emojis:
                    day_emojis.append(category.emoji)
        return dict(sorted(emojis.items()))

    # Summaries

    async def collect_summary(
        self, start: date | datetime, end: date | datetime
    ) -> PeriodSummary:
        """Category totals for a period, ready to turn into a prompt."""
        stats = await self.get_all_period_stats(start, end)
        rows = [
            SummaryRow(category_name=c.name, emoji=c.emoji, stats=stats[c.name])
            for c in self._registry
            if c.name in stats
        ]
        return PeriodSummary(
            start=localize(start, self._tz), end=localize(end, self._tz), rows=rows
        )

    async def generate_summary(
        self,
        start: date | datetime,
        end: date | datetime,
        summarizer: TextSummaryService,
    ) -> str | None:
        """Ask ``summarizer`` for a text summary; None if it fails or there is no data."""
        summary = await self.collect_summary(start, end)
        if not summary.rows:
            return None
        try:
            return await summarizer.generate(summary.to_summary_text())
        except Exception as e:
            logger.warning(
                "summary_generation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    def clear_session_cache(self) -> None:
        self._cache.clear()

    # Sync ledger

    def _require_sink(self) -> RecordSink:
        if self._sink is None:
            raise HealthCalendarError("No record sink configured")
        return self._sink

    def _enabled(self, enabled_categories: Iterable[str] | None) -> list[Category]:
        return self._registry.select(enabled_categories)

    async def sync(
        self,
        start: date | datetime,
        end: date | datetime,
        enabled_categories: Iterable[str] | None = None,
    ) -> SyncOutcome:
        """Project samples of ``[start, end]`` into calendar records, once."""
        return await self._ledger.sync(
            start, end, self._enabled(enabled_categories), self._source, self._require_sink()
        )

    async def preview(
        self,
        start: date | datetime,
        end: date | datetime,
        enabled_categories: Iterable[str] | None = None,
    ) -> list[PreviewRecord]:
        return await self._ledger.preview_range(
            start, end, self._enabled(enabled_categories), self._source
        )

    async def delete_range(self, range_id: uuid.UUID | str) -> DeletionOutcome:
        return await self._ledger.delete_range(range_id, self._require_sink())

    async def delete_all(self) -> DeletionOutcome:
        return await self._ledger.delete_all(self._require_sink())

    def is_range_synced(
        self, start: date | datetime, end: date | datetime
    ) -> SyncedRange | None:
        return self._ledger.is_range_synced(start, end)

    def get_synced_days(self) -> set[date]:
        return self._ledger.synced_days()

    def history(self) -> list[SyncedRange]:
        return self._ledger.entries

    @property
    def total_record_count(self) -> int:
        return self._ledger.total_record_count
