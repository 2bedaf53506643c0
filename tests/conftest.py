"""Pytest configuration and fixtures."""

from collections import defaultdict
from datetime import UTC, datetime, timedelta
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from health_calendar.categories import Category, CategoryRegistry  # noqa: E402
from health_calendar.errors import (  # noqa: E402
    ProviderUnavailableError,
    RecordCreationError,
    RecordDeletionError,
    RecordNotFoundError,
    SourceQueryError,
)
from health_calendar.interfaces import RecordSink, SampleSource  # noqa: E402
from health_calendar.models import RawSample  # noqa: E402
from health_calendar.store import InMemoryKeyValueStore  # noqa: E402


class FakeSampleSource(SampleSource):
    """In-memory sample source keyed by category name."""

    def __init__(
        self,
        samples: dict[str, list[RawSample]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.samples = defaultdict(list, samples or {})
        self.failing = failing or set()
        self.calls: list[tuple[str, datetime, datetime]] = []

    def add(self, category_name: str, *samples: RawSample) -> None:
        self.samples[category_name].extend(samples)

    async def fetch(self, category: Category, start: datetime, end: datetime) -> list[RawSample]:
        self.calls.append((category.name, start, end))
        if category.name in self.failing:
            raise SourceQueryError(f"query for {category.name} failed")
        return [s for s in self.samples[category.name] if start <= s.start_time < end]

    async def fetch_aggregated_daily(
        self, category: Category, start: datetime, end: datetime
    ) -> list[RawSample]:
        totals: dict[datetime, float] = defaultdict(float)
        for sample in await self.fetch(category, start, end):
            day = sample.start_time.replace(hour=0, minute=0, second=0, microsecond=0)
            totals[day] += sample.numeric_value or 0
        return [
            RawSample(
                start_time=day,
                end_time=day + timedelta(days=1),
                is_all_day=True,
                formatted_detail=f"{category.format_value(total)} {category.unit_name}",
                numeric_value=total,
            )
            for day, total in sorted(totals.items())
            if total > 0
        ]


class FakeRecordSink(RecordSink):
    """Records creates and deletes, with injectable failures.

    ``fail_creates`` holds 1-based create attempt numbers that fail;
    ``unavailable_after`` makes every create after that many succeed raise
    ProviderUnavailableError.
    """

    def __init__(
        self,
        fail_creates: set[int] | None = None,
        fail_deletes: set[str] | None = None,
        unavailable_after: int | None = None,
    ) -> None:
        self.fail_creates = fail_creates or set()
        self.fail_deletes = fail_deletes or set()
        self.unavailable_after = unavailable_after
        self.unavailable = False
        self.records: dict[str, tuple[RawSample, Category]] = {}
        self.deleted: list[str] = []
        self._attempts = 0

    async def create(self, sample: RawSample, category: Category) -> str:
        if self.unavailable or (
            self.unavailable_after is not None and len(self.records) >= self.unavailable_after
        ):
            raise ProviderUnavailableError("unauthorized")
        self._attempts += 1
        if self._attempts in self.fail_creates:
            raise RecordCreationError(f"create #{self._attempts} rejected")
        record_id = f"evt-{self._attempts}"
        self.records[record_id] = (sample, category)
        return record_id

    async def delete(self, record_id: str) -> None:
        if self.unavailable:
            raise ProviderUnavailableError("unauthorized")
        if record_id in self.fail_deletes:
            raise RecordDeletionError(f"delete of {record_id} rejected")
        if record_id not in self.records:
            raise RecordNotFoundError(record_id)
        del self.records[record_id]
        self.deleted.append(record_id)


def at(day: int, hour: int = 12, minute: int = 0, month: int = 1) -> datetime:
    """UTC timestamp in January 2024."""
    return datetime(2024, month, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def registry():
    """Default category registry."""
    return CategoryRegistry()


@pytest.fixture
def source():
    """Empty in-memory sample source."""
    return FakeSampleSource()


@pytest.fixture
def sink():
    """Record sink that accepts everything."""
    return FakeRecordSink()


@pytest.fixture
def store():
    """In-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2024-01-20 18:00 UTC."""
    return lambda: datetime(2024, 1, 20, 18, 0, tzinfo=UTC)


@pytest.fixture
def steps(registry):
    return registry.get("Steps")


@pytest.fixture
def heart_rate(registry):
    return registry.get("Heart Rate")


@pytest.fixture
def sleep(registry):
    return registry.get("Sleep")


@pytest.fixture
def workouts(registry):
    return registry.get("Workouts")


@pytest.fixture
def sample_export_payload():
    """Health Auto Export REST payload with metrics and workouts."""
    return {
        "data": {
            "metrics": [
                {
                    "name": "step_count",
                    "units": "count",
                    "data": [
                        {"date": "2024-01-15 08:00:00 +0000", "qty": 4000},
                        {"date": "2024-01-15 18:00:00 +0000", "qty": 6523},
                        {"date": "2024-01-16 09:00:00 +0000", "qty": 8000},
                    ],
                },
                {
                    "name": "heart_rate",
                    "units": "count/min",
                    "data": [
                        {"date": "2024-01-15 10:30:00 +0000", "Min": 60, "Avg": 72, "Max": 90},
                    ],
                },
                {
                    "name": "blood_pressure",
                    "units": "mmHg",
                    "data": [
                        {"date": "2024-01-15 07:00:00 +0000", "systolic": 120, "diastolic": 80},
                    ],
                },
                {
                    "name": "sleep_analysis",
                    "units": "hr",
                    "data": [
                        {
                            "date": "2024-01-15 07:00:00 +0000",
                            "sleepStart": "2024-01-14 23:00:00 +0000",
                            "sleepEnd": "2024-01-15 07:00:00 +0000",
                            "asleep": 7.5,
                        },
                    ],
                },
                {
                    "name": "mindful_minutes",
                    "units": "min",
                    "data": [{"date": "2024-01-15 21:00:00 +0000", "qty": 10}],
                },
                {
                    "name": "heart_rate",
                    "units": "count/min",
                    "data": [{"date": "not a date", "qty": 70}],
                },
            ],
            "workouts": [
                {
                    "name": "Outdoor Run",
                    "start": "2024-01-15 07:00:00 +0000",
                    "end": "2024-01-15 07:45:00 +0000",
                    "activeEnergyBurned": {"qty": 350.4, "units": "kcal"},
                },
            ],
        }
    }
