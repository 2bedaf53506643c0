"""Reduction of raw samples into per-period statistics."""

from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, date, datetime, tzinfo

from .categories import AggregationKind, Category
from .dates import day_of, localize
from .formatting import format_duration
from .models import PeriodStats, RawSample


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class StatsReducer:
    """Turns heterogeneous samples into comparable totals and averages.

    Pure: the result depends only on the arguments and the category's
    format spec.
    """

    def __init__(self, tz: tzinfo = UTC) -> None:
        self._tz = tz

    def reduce(
        self,
        category: Category,
        samples: Sequence[RawSample],
        range_start: datetime,
        range_end: datetime,
    ) -> PeriodStats | None:
        """Reduce ``samples`` for ``category`` over ``[range_start, range_end)``.

        Returns:
            PeriodStats, or None when no sample contributes.
        """
        match category.aggregation_kind:
            case AggregationKind.EVENT_COUNT:
                return self._reduce_events(category, samples)
            case AggregationKind.DURATION_FROM_INTERVALS:
                return self._reduce_durations(samples)
            case AggregationKind.CUMULATIVE_SUM | AggregationKind.DISCRETE_AVERAGE:
                return self._reduce_quantities(category, samples, range_start, range_end)
            case _:
                raise ValueError(f"Unsupported aggregation kind: {category.aggregation_kind}")

    def _reduce_events(self, category: Category, samples: Sequence[RawSample]) -> PeriodStats | None:
        if not samples:
            return None
        count = len(samples)
        return PeriodStats(
            total_value=float(count),
            average_value=0.0,
            units_with_data=count,
            formatted_total=str(count),
            formatted_average="",
            unit_name=category.unit_for_count(count),
        )

    def _reduce_durations(self, samples: Sequence[RawSample]) -> PeriodStats | None:
        if not samples:
            return None

        total_minutes = sum(s.duration_minutes for s in samples)
        days = {day_of(s.start_time, self._tz) for s in samples}
        average_minutes = total_minutes / len(days) if days else 0.0

        return PeriodStats(
            total_value=total_minutes,
            average_value=average_minutes,
            units_with_data=len(days),
            formatted_total=format_duration(total_minutes),
            formatted_average=format_duration(average_minutes),
            unit_name="total",
        )

    def _reduce_quantities(
        self,
        category: Category,
        samples: Sequence[RawSample],
        range_start: datetime,
        range_end: datetime,
    ) -> PeriodStats | None:
        daily = self.daily_values(category, samples, range_start, range_end)

        # A zero day means "no reading", not "reading of zero"
        contributing = [value for value in daily.values() if value > 0]
        if not contributing:
            return None

        if category.aggregation_kind is AggregationKind.CUMULATIVE_SUM:
            total = sum(contributing)
            average = total / len(contributing)
        else:
            total = mean(contributing)
            average = total

        return PeriodStats(
            total_value=total,
            average_value=average,
            units_with_data=len(contributing),
            formatted_total=category.format_value(total),
            formatted_average=category.format_value(average),
            unit_name=category.unit_name,
        )

    def daily_values(
        self,
        category: Category,
        samples: Sequence[RawSample],
        range_start: datetime,
        range_end: datetime,
    ) -> dict[date, float]:
        """Per-day sum (cumulative) or mean (discrete) of samples starting in range.

        Days are one-day windows anchored at the day containing
        ``range_start``. Samples without a numeric value are ignored.
        """
        start = localize(range_start, self._tz)
        end = localize(range_end, self._tz)

        buckets: dict[date, list[float]] = defaultdict(list)
        for sample in samples:
            if sample.numeric_value is None:
                continue
            sample_start = localize(sample.start_time, self._tz)
            if start <= sample_start < end:
                buckets[sample_start.date()].append(sample.numeric_value)

        if category.aggregation_kind is AggregationKind.CUMULATIVE_SUM:
            return {day: sum(values) for day, values in sorted(buckets.items())}
        return {day: mean(values) for day, values in sorted(buckets.items())}
