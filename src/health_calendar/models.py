"""Data models for samples, statistics, chart series and synced ranges."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class RawSample(BaseModel):
    """One observed or derived unit of health activity.

    A quantity reading has ``start_time == end_time`` (or a short interval)
    and a ``numeric_value``; sleep, mindfulness and workouts are intervals.
    """

    model_config = ConfigDict(frozen=True)

    start_time: datetime = Field(description="Sample start")
    end_time: datetime = Field(description="Sample end (>= start)")
    is_all_day: bool = Field(default=False, description="Whole-day aggregate sample")
    formatted_detail: str = Field(default="", description="Human-readable value")
    numeric_value: float | None = Field(default=None, description="Quantity value")

    @model_validator(mode="after")
    def check_interval(self) -> "RawSample":
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time {self.end_time.isoformat()} is before "
                f"start_time {self.start_time.isoformat()}"
            )
        return self

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


@dataclass(frozen=True)
class PeriodStats:
    """Reduced total/average/day-count summary for a category over a range."""

    total_value: float
    average_value: float
    units_with_data: int
    formatted_total: str
    formatted_average: str
    unit_name: str


@dataclass(frozen=True)
class ChartPoint:
    """One bucket (hour or day) of a fixed-width time series."""

    timestamp: datetime
    value: float
    label: str


class SyncedRange(BaseModel):
    """Persisted record that a date range was projected into calendar records."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    start_date: datetime
    end_date: datetime
    synced_at: datetime
    record_count: int = Field(ge=0)
    record_ids: tuple[str, ...] = ()
    complete: bool = Field(
        default=True, description="False when the sync stopped before every record was created"
    )

    @model_validator(mode="after")
    def check_record_count(self) -> "SyncedRange":
        if len(self.record_ids) != self.record_count:
            raise ValueError(
                f"record_count {self.record_count} does not match "
                f"{len(self.record_ids)} record ids"
            )
        return self


SYNCED_RANGES_ADAPTER = TypeAdapter(list[SyncedRange])


class CalendarRecord(BaseModel):
    """Content of one calendar record created from a sample."""

    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    notes: str


@dataclass(frozen=True)
class PreviewRecord:
    """A record a sync would create, shown before committing."""

    title: str
    start_time: datetime
    end_time: datetime
    is_all_day: bool
    details: str
    emoji: str
    category_name: str


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a sync request."""

    synced_range: SyncedRange
    created: int = 0
    failed: int = 0
    source_failures: int = 0
    already_synced: bool = False

    @property
    def message(self) -> str:
        if self.already_synced:
            synced_on = f"{self.synced_range.synced_at:%m/%d/%y}"
            if not self.synced_range.complete:
                return (
                    f"Date range partially synced on {synced_on}; "
                    "delete it and sync again to finish"
                )
            return f"Date range already synced on {synced_on}"
        message = f"Sync complete: {self.created} events created"
        if self.failed > 0:
            message += f", {self.failed} failed"
        return message


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of deleting one or all synced ranges."""

    removed_ranges: int
    deleted: int = 0
    failed: int = 0
    missing: int = 0
    failed_record_ids: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        message = f"Deleted {self.deleted} events"
        if self.failed > 0:
            message += f", {self.failed} failed"
        return message


@dataclass(frozen=True)
class SummaryRow:
    """One category line of a period summary."""

    category_name: str
    emoji: str
    stats: PeriodStats


@dataclass
class PeriodSummary:
    """Category totals for a period, the data a text summary is built from."""

    start: datetime
    end: datetime
    rows: list[SummaryRow] = field(default_factory=list)

    def to_summary_text(self) -> str:
        """Format totals as plain text for a summary prompt."""
        lines = [f"PERIOD: {self.start:%Y-%m-%d} to {self.end:%Y-%m-%d}"]
        if not self.rows:
            lines.append("  No data recorded.")
            return "\n".join(lines)

        for row in self.rows:
            stats = row.stats
            line = f"  {row.category_name}: {stats.formatted_total} {stats.unit_name}"
            # Event counts have no per-day average
            if stats.formatted_average:
                days = "day" if stats.units_with_data == 1 else "days"
                line += f" (avg {stats.formatted_average} over {stats.units_with_data} {days})"
            lines.append(line)
        return "\n".join(lines)
