"""Sample source reading a Health Auto Export JSON file."""

import asyncio
import json
import re
from collections import defaultdict
from datetime import UTC, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from .categories import AggregationKind, Category, CategoryRegistry, normalize_source_name
from .dates import add_days, localize, start_of_day
from .errors import SourceQueryError
from .formatting import format_duration, format_workout_detail
from .interfaces import SampleSource
from .models import RawSample
from .types import JSONObject

logger = structlog.get_logger(__name__)


# Regex to normalize Health Auto Export date format:
# "2022-06-12 23:59:00 +0400" -> "2022-06-12T23:59:00+04:00"
_DATE_SPACE_TZ_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s(\d{2}:\d{2}:\d{2})\s([+-])(\d{2})(\d{2})$")

_WORKOUTS_KEY = "workouts"


def _normalize_date(value: Any) -> Any:
    """Normalize date strings from Health Auto Export format to ISO 8601."""
    if not isinstance(value, str):
        return value
    m = _DATE_SPACE_TZ_RE.match(value)
    if m:
        return f"{m[1]}T{m[2]}{m[3]}{m[4]}:{m[5]}"
    return value


def _qty_of(value: Any) -> Any:
    """Unwrap ``{"qty": 350, "units": "kcal"}`` quantities."""
    if isinstance(value, dict):
        return value.get("qty")
    return value


class QuantityReading(BaseModel):
    """A point-in-time reading such as steps or heart rate."""

    date: datetime = Field(description="Timestamp of the measurement")
    qty: float | None = Field(default=None, description="Quantity value")
    avg: float | None = Field(default=None, validation_alias=AliasChoices("avg", "Avg"))
    systolic: float | None = Field(default=None)
    diastolic: float | None = Field(default=None)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    def value_for(self, category: Category) -> float | None:
        # Blood pressure arrives as one reading with both components
        if category.name == "BP Systolic" and self.systolic is not None:
            return self.systolic
        if category.name == "BP Diastolic" and self.diastolic is not None:
            return self.diastolic
        return self.qty if self.qty is not None else self.avg


class IntervalReading(BaseModel):
    """A sleep record or mindful session spanning a time interval."""

    date: datetime | None = Field(default=None)
    start: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("sleepStart", "startDate", "start", "inBedStart"),
    )
    end: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("sleepEnd", "endDate", "end", "inBedEnd"),
    )
    qty: float | None = Field(default=None, description="Duration in minutes")

    @field_validator("date", "start", "end", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    def interval(self) -> tuple[datetime, datetime]:
        if self.start is not None and self.end is not None:
            return self.start, self.end
        # Mindful minutes export as a start date plus a duration
        if self.date is not None and self.qty is not None:
            return self.date, self.date + timedelta(minutes=self.qty)
        raise ValueError("interval reading has neither start/end nor date/qty")


class WorkoutReading(BaseModel):
    """A workout from the ``workouts`` array."""

    name: str = Field(description="Workout type")
    start: datetime = Field(description="Workout start time")
    end: datetime = Field(description="Workout end time")
    duration: float | None = Field(default=None, description="Duration in minutes")
    active_energy: float | None = Field(
        default=None,
        validation_alias=AliasChoices("activeEnergyBurned", "activeEnergy"),
    )

    @field_validator("start", "end", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    @field_validator("active_energy", mode="before")
    @classmethod
    def unwrap_quantity(cls, v: Any) -> Any:
        return _qty_of(v)

    @property
    def duration_minutes(self) -> float:
        if self.duration is not None:
            return self.duration
        return (self.end - self.start).total_seconds() / 60


class ExportFileSampleSource(SampleSource):
    """Serves samples from one Health Auto Export file.

    The file is read and parsed on first use; every category's samples are
    then kept in memory for the lifetime of the source.
    """

    def __init__(
        self,
        path: Path | str,
        registry: CategoryRegistry | None = None,
        tz: tzinfo = UTC,
    ) -> None:
        """Initialize the source.

        Args:
            path: Health Auto Export JSON file.
            registry: Categories to map metric names onto.
            tz: Timezone for naive timestamps and daily totals.
        """
        self._path = Path(path)
        self._registry = registry or CategoryRegistry()
        self._tz = tz
        self._samples: dict[str, list[RawSample]] | None = None
        self._load_lock = asyncio.Lock()

    async def fetch(self, category: Category, start: datetime, end: datetime) -> list[RawSample]:
        samples = await self._samples_for(category)
        window_start = localize(start, self._tz)
        window_end = localize(end, self._tz)
        selected = [
            s for s in samples if window_start <= localize(s.start_time, self._tz) < window_end
        ]
        selected.sort(key=lambda s: localize(s.start_time, self._tz), reverse=True)
        return selected

    async def fetch_aggregated_daily(
        self, category: Category, start: datetime, end: datetime
    ) -> list[RawSample]:
        if category.aggregation_kind is not AggregationKind.CUMULATIVE_SUM:
            raise ValueError(f"Category '{category.name}' has no daily cumulative total")

        totals: dict[datetime, float] = defaultdict(float)
        for sample in await self.fetch(category, start, end):
            if sample.numeric_value is not None:
                totals[start_of_day(sample.start_time, self._tz)] += sample.numeric_value

        return [
            RawSample(
                start_time=day,
                end_time=add_days(day, 1, self._tz),
                is_all_day=True,
                formatted_detail=f"{category.format_value(total)} {category.unit_name}",
                numeric_value=total,
            )
            for day, total in sorted(totals.items())
            if total > 0
        ]

    async def _samples_for(self, category: Category) -> list[RawSample]:
        if self._samples is None:
            async with self._load_lock:
                if self._samples is None:
                    self._samples = await self._load()
        return self._samples.get(category.name, [])

    async def _load(self) -> dict[str, list[RawSample]]:
        loop = asyncio.get_running_loop()

        def read() -> Any:
            with self._path.open("rb") as f:
                return json.load(f)

        try:
            payload = await loop.run_in_executor(None, read)
        except (OSError, ValueError) as e:
            raise SourceQueryError(f"Cannot read export file {self._path}: {e}") from e

        if not isinstance(payload, dict):
            raise SourceQueryError(f"Export file {self._path} is not a JSON object")

        samples = self.parse_payload(payload)
        logger.info(
            "export_file_loaded",
            path=str(self._path),
            categories=len(samples),
            samples=sum(len(v) for v in samples.values()),
        )
        return samples

    def parse_payload(self, payload: JSONObject) -> dict[str, list[RawSample]]:
        """Map every parseable item in ``payload`` to samples by category name."""
        samples: dict[str, list[RawSample]] = defaultdict(list)
        metric_items, workout_items = self._normalize_payload(payload)

        for item in metric_items:
            name = str(item.get("name") or "")
            categories = self._registry.for_source_name(name)
            if not categories:
                logger.debug("export_metric_unmapped", metric_name=name)
                continue
            for category in categories:
                try:
                    sample = self._metric_sample(category, item)
                except (ValidationError, ValueError, TypeError) as e:
                    self._log_parse_error(e, item, category)
                    continue
                if sample is not None:
                    samples[category.name].append(sample)

        for category in self._registry.for_source_name(_WORKOUTS_KEY):
            for item in workout_items:
                try:
                    samples[category.name].append(self._workout_sample(item))
                except (ValidationError, ValueError, TypeError) as e:
                    self._log_parse_error(e, item, category)

        return dict(samples)

    @staticmethod
    def _normalize_payload(data: JSONObject) -> tuple[list[JSONObject], list[JSONObject]]:
        """Flatten a payload into individual metric items and workout items.

        Handles the REST API format::

            {"data": {"metrics": [{"name": "step_count", "units": "count",
                                   "data": [{"date": "...", "qty": 72}]}],
                      "workouts": [...]}}

        and the flat legacy format ``{"data": [{"name": ..., "date": ...}]}``.
        """
        inner = data.get("data")
        metric_items: list[JSONObject] = []
        workout_items: list[JSONObject] = []

        if isinstance(inner, dict):
            for metric in inner.get("metrics", []):
                if not isinstance(metric, dict):
                    continue
                name = metric.get("name", "")
                for point in metric.get("data", []):
                    if isinstance(point, dict):
                        metric_items.append({**point, "name": name})
            workout_items = [w for w in inner.get(_WORKOUTS_KEY, []) if isinstance(w, dict)]
        elif isinstance(inner, list):
            for item in inner:
                if not isinstance(item, dict):
                    continue
                if normalize_source_name(str(item.get("name", ""))) == _WORKOUTS_KEY:
                    workout_items.extend(w for w in item.get("data", []) if isinstance(w, dict))
                else:
                    metric_items.append(item)

        return metric_items, workout_items

    def _metric_sample(self, category: Category, item: JSONObject) -> RawSample | None:
        if category.aggregation_kind is AggregationKind.DURATION_FROM_INTERVALS:
            start, end = IntervalReading.model_validate(item).interval()
            start, end = localize(start, self._tz), localize(end, self._tz)
            return RawSample(
                start_time=start,
                end_time=end,
                formatted_detail=format_duration((end - start).total_seconds() / 60),
            )

        reading = QuantityReading.model_validate(item)
        value = reading.value_for(category)
        if value is None:
            return None
        moment = localize(reading.date, self._tz)
        return RawSample(
            start_time=moment,
            end_time=moment,
            formatted_detail=f"{category.format_value(value)} {category.unit_name}",
            numeric_value=value,
        )

    def _workout_sample(self, item: JSONObject) -> RawSample:
        workout = WorkoutReading.model_validate(item)
        return RawSample(
            start_time=localize(workout.start, self._tz),
            end_time=localize(workout.end, self._tz),
            formatted_detail=format_workout_detail(
                workout.name, workout.duration_minutes, workout.active_energy
            ),
        )

    @staticmethod
    def _log_parse_error(error: Exception, item: JSONObject, category: Category) -> None:
        logger.warning(
            "export_item_skipped",
            category=category.name,
            error=str(error),
            error_type=type(error).__name__,
            metric_name=item.get("name"),
            metric_date=str(item.get("date", item.get("start", "unknown"))),
        )
