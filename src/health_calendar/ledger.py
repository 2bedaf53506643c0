"""Persistent ledger of synced date ranges and the records they created."""

import asyncio
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, tzinfo
from enum import Enum

import structlog
from opentelemetry import trace
from pydantic import ValidationError

from .categories import Category
from .dates import add_days, iter_days_inclusive, localize, same_day
from .errors import (
    ProviderUnavailableError,
    RangeNotFoundError,
    RecordCreationError,
    RecordDeletionError,
    RecordNotFoundError,
)
from .interfaces import KeyValueStore, RecordSink, SampleSource
from .metrics import LEDGER_ENTRIES, RECORDS_CREATED, RECORDS_DELETED, RECORDS_FAILED
from .models import (
    SYNCED_RANGES_ADAPTER,
    DeletionOutcome,
    PreviewRecord,
    SyncedRange,
    SyncOutcome,
)
from .records import build_preview
from .sampling import fetch_samples
from .tracing import set_range_attributes
from .types import LedgerStats

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_LEDGER_KEY = "syncHistory"


class RangeState(str, Enum):
    """Synchronization lifecycle of a date range."""

    UNSYNCED = "unsynced"
    SYNCING = "syncing"
    SYNCED = "synced"
    DELETED = "deleted"


class SyncLedger:
    """Records which ranges were synced, with which external record ids.

    Guarantees at-most-once creation per exact calendar-day range and
    drives preview, creation and reversal of calendar records. The ledger
    is persisted as one blob; every mutation rewrites it whole.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = DEFAULT_LEDGER_KEY,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Key-value store the ledger blob lives in.
            key: Key the blob is stored under.
            tz: Timezone that defines calendar days.
            clock: Returns "now"; defaults to the current time in ``tz``.
        """
        self._store = store
        self._key = key
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._entries: list[SyncedRange] = []
        self._in_flight: set[tuple[date, date]] = set()
        self._lock = asyncio.Lock()

    @property
    def entries(self) -> list[SyncedRange]:
        """Synced ranges, most recent first."""
        return list(self._entries)

    @property
    def is_syncing(self) -> bool:
        return bool(self._in_flight)

    @property
    def total_record_count(self) -> int:
        return sum(entry.record_count for entry in self._entries)

    async def restore(self) -> int:
        """Load the ledger from the store.

        An undecodable blob is discarded and the ledger starts empty.

        Returns:
            Number of entries restored.
        """
        data = await self._store.get_blob(self._key)
        if data is None:
            self._entries = []
        else:
            try:
                entries = SYNCED_RANGES_ADAPTER.validate_json(data)
            except (ValidationError, ValueError) as e:
                logger.warning("ledger_decode_failed", key=self._key, error=str(e))
                entries = []
            # Newest first regardless of stored order
            self._entries = sorted(entries, key=lambda entry: entry.synced_at, reverse=True)

        LEDGER_ENTRIES.set(len(self._entries))
        logger.info("ledger_restored", entries=len(self._entries))
        return len(self._entries)

    def get(self, range_id: uuid.UUID | str) -> SyncedRange:
        wanted = str(range_id)
        for entry in self._entries:
            if str(entry.id) == wanted:
                return entry
        raise RangeNotFoundError(wanted)

    def is_range_synced(
        self, start: date | datetime, end: date | datetime
    ) -> SyncedRange | None:
        """Entry whose start and end fall on the same calendar days, if any.

        Overlapping but non-identical ranges are reported as unsynced.
        """
        for entry in self._entries:
            if same_day(entry.start_date, start, self._tz) and same_day(
                entry.end_date, end, self._tz
            ):
                return entry
        return None

    def state_of(self, start: date | datetime, end: date | datetime) -> RangeState:
        if self._range_key(start, end) in self._in_flight:
            return RangeState.SYNCING
        if self.is_range_synced(start, end) is not None:
            return RangeState.SYNCED
        return RangeState.UNSYNCED

    def synced_days(self) -> set[date]:
        """Every calendar day covered by an entry, both ends included."""
        days: set[date] = set()
        for entry in self._entries:
            days.update(iter_days_inclusive(entry.start_date, entry.end_date, self._tz))
        return days

    def get_stats(self) -> LedgerStats:
        return {
            "entries": len(self._entries),
            "total_records": self.total_record_count,
            "synced_days": len(self.synced_days()),
            "syncing": self.is_syncing,
        }

    async def preview_range(
        self,
        start: date | datetime,
        end: date | datetime,
        categories: Iterable[Category],
        source: SampleSource,
    ) -> list[PreviewRecord]:
        """Records a sync of ``[start, end]`` would create, newest first.

        Read-only: nothing is created and the ledger is untouched.
        """
        start_dt, fetch_end = self._fetch_window(start, end)
        previews: list[PreviewRecord] = []
        for category in categories:
            fetched = await fetch_samples(source, category, start_dt, fetch_end, daily_totals=True)
            previews.extend(build_preview(sample, category) for sample in fetched.samples)

        previews.sort(key=lambda p: localize(p.start_time, self._tz), reverse=True)
        return previews

    async def sync(
        self,
        start: date | datetime,
        end: date | datetime,
        categories: Iterable[Category],
        source: SampleSource,
        sink: RecordSink,
    ) -> SyncOutcome:
        """Create one calendar record per sample in ``[start, end]``.

        A range already synced on the same calendar days is a no-op that
        reports the earlier entry. Per-record failures are counted and do
        not abort the batch.

        Raises:
            ProviderUnavailableError: If the sink cannot be reached at all.
                Records created before the failure are still recorded,
                in an entry marked incomplete.
        """
        async with self._lock:
            existing = self.is_range_synced(start, end)
            if existing is not None:
                logger.info(
                    "sync_skipped_already_synced",
                    range_id=str(existing.id),
                    synced_at=existing.synced_at.isoformat(),
                    complete=existing.complete,
                )
                return SyncOutcome(synced_range=existing, already_synced=True)

            range_key = self._range_key(start, end)
            self._in_flight.add(range_key)
            self._log_transition(range_key, RangeState.UNSYNCED, RangeState.SYNCING)
            try:
                return await self._sync_locked(start, end, list(categories), source, sink)
            finally:
                self._in_flight.discard(range_key)

    async def _sync_locked(
        self,
        start: date | datetime,
        end: date | datetime,
        categories: list[Category],
        source: SampleSource,
        sink: RecordSink,
    ) -> SyncOutcome:
        start_dt, fetch_end = self._fetch_window(start, end)
        created_ids: list[str] = []
        failed = 0
        source_failures = 0

        with tracer.start_as_current_span("ledger.sync") as span:
            span.set_attribute("sync.categories", len(categories))
            set_range_attributes(span, start_dt, localize(end, self._tz))
            logger.info(
                "sync_started",
                start=start_dt.isoformat(),
                end=localize(end, self._tz).isoformat(),
                categories=len(categories),
            )

            try:
                for category in categories:
                    fetched = await fetch_samples(
                        source, category, start_dt, fetch_end, daily_totals=True
                    )
                    if fetched.failed:
                        source_failures += 1

                    for sample in fetched.samples:
                        try:
                            record_id = await sink.create(sample, category)
                        except RecordCreationError as e:
                            failed += 1
                            RECORDS_FAILED.labels(operation="create").inc()
                            logger.warning(
                                "record_create_failed",
                                category=category.name,
                                sample_start=sample.start_time.isoformat(),
                                error=str(e),
                            )
                            continue
                        created_ids.append(record_id)
                        RECORDS_CREATED.inc()
            except ProviderUnavailableError:
                logger.error("sync_aborted_provider_unavailable", created=len(created_ids))
                if created_ids:
                    await self._append(start, end, created_ids, complete=False)
                raise

            entry = await self._append(start, end, created_ids)
            span.set_attribute("sync.created", len(created_ids))
            span.set_attribute("sync.failed", failed)

        logger.info(
            "sync_completed",
            range_id=str(entry.id),
            created=len(created_ids),
            failed=failed,
            source_failures=source_failures,
        )
        self._log_transition(
            self._range_key(start, end), RangeState.SYNCING, RangeState.SYNCED
        )
        return SyncOutcome(
            synced_range=entry,
            created=len(created_ids),
            failed=failed,
            source_failures=source_failures,
        )

    async def delete_range(self, range_id: uuid.UUID | str, sink: RecordSink) -> DeletionOutcome:
        """Delete every record of one synced range, then drop the entry.

        Deletion is best effort: failures are counted and the entry is
        removed regardless, which can leave orphaned records behind. Their
        ids are reported in the outcome.

        Raises:
            RangeNotFoundError: If no entry has ``range_id``.
            ProviderUnavailableError: If the sink cannot be reached at all;
                the ledger is left untouched.
        """
        async with self._lock:
            entry = self.get(range_id)
            with tracer.start_as_current_span("ledger.delete_range") as span:
                span.set_attribute("delete.records", entry.record_count)
                set_range_attributes(
                    span, localize(entry.start_date, self._tz), localize(entry.end_date, self._tz)
                )
                deleted, failed, missing, failed_ids = await self._delete_records(
                    entry.record_ids, sink
                )
                remaining = [e for e in self._entries if e.id != entry.id]
                await self._replace_entries(remaining)

        self._log_transition(
            self._range_key(entry.start_date, entry.end_date),
            RangeState.SYNCED,
            RangeState.DELETED,
        )
        outcome = DeletionOutcome(
            removed_ranges=1,
            deleted=deleted,
            failed=failed,
            missing=missing,
            failed_record_ids=tuple(failed_ids),
        )
        logger.info(
            "range_deleted",
            range_id=str(entry.id),
            deleted=deleted,
            failed=failed,
            missing=missing,
        )
        return outcome

    async def delete_all(self, sink: RecordSink) -> DeletionOutcome:
        """Delete the records of every synced range, then clear the ledger."""
        async with self._lock:
            entries = list(self._entries)
            with tracer.start_as_current_span("ledger.delete_all") as span:
                span.set_attribute("delete.ranges", len(entries))
                record_ids = [rid for entry in entries for rid in entry.record_ids]
                deleted, failed, missing, failed_ids = await self._delete_records(
                    record_ids, sink
                )
                await self._replace_entries([])

        logger.info(
            "ledger_cleared",
            ranges=len(entries),
            deleted=deleted,
            failed=failed,
            missing=missing,
        )
        return DeletionOutcome(
            removed_ranges=len(entries),
            deleted=deleted,
            failed=failed,
            missing=missing,
            failed_record_ids=tuple(failed_ids),
        )

    async def _delete_records(
        self, record_ids: Iterable[str], sink: RecordSink
    ) -> tuple[int, int, int, list[str]]:
        deleted = 0
        missing = 0
        failed_ids: list[str] = []
        for record_id in record_ids:
            try:
                await sink.delete(record_id)
            except RecordNotFoundError:
                missing += 1
                continue
            except RecordDeletionError as e:
                failed_ids.append(record_id)
                RECORDS_FAILED.labels(operation="delete").inc()
                logger.warning("record_delete_failed", record_id=record_id, error=str(e))
                continue
            deleted += 1
            RECORDS_DELETED.inc()
        return deleted, len(failed_ids), missing, failed_ids

    async def _append(
        self,
        start: date | datetime,
        end: date | datetime,
        record_ids: list[str],
        *,
        complete: bool = True,
    ) -> SyncedRange:
        entry = SyncedRange(
            start_date=localize(start, self._tz),
            end_date=localize(end, self._tz),
            synced_at=self._clock(),
            record_count=len(record_ids),
            record_ids=tuple(record_ids),
            complete=complete,
        )
        await self._replace_entries([entry, *self._entries])
        return entry

    async def _replace_entries(self, entries: list[SyncedRange]) -> None:
        """Persist the new entry list as one blob, then swap it in.

        If the write fails, the in-memory entries keep matching the store.
        """
        await self._store.set_blob(self._key, SYNCED_RANGES_ADAPTER.dump_json(entries))
        self._entries = entries
        LEDGER_ENTRIES.set(len(entries))

    def _fetch_window(
        self, start: date | datetime, end: date | datetime
    ) -> tuple[datetime, datetime]:
        # Provider queries exclude the end, so widen by a day to include it
        return localize(start, self._tz), add_days(end, 1, self._tz)

    def _range_key(self, start: date | datetime, end: date | datetime) -> tuple[date, date]:
        return localize(start, self._tz).date(), localize(end, self._tz).date()

    @staticmethod
    def _log_transition(
        range_key: tuple[date, date], before: RangeState, after: RangeState
    ) -> None:
        logger.debug(
            "range_state_changed",
            start=range_key[0].isoformat(),
            end=range_key[1].isoformat(),
            before=before.value,
            after=after.value,
        )
