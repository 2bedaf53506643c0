"""Binning of raw samples into zero-filled hourly or daily series."""

from bisect import bisect_right
from collections.abc import Sequence
from datetime import UTC, datetime, tzinfo

from .categories import AggregationKind, Category
from .dates import (
    add_days,
    add_hours,
    day_label,
    hour_label,
    iter_day_starts,
    localize,
    start_of_day,
)
from .models import ChartPoint, RawSample
from .stats import mean

HOURS_PER_DAY = 24


class ChartBinner:
    """Buckets samples into a gap-free series for a bounded window."""

    def __init__(self, tz: tzinfo = UTC) -> None:
        self._tz = tz

    def bin(
        self,
        category: Category,
        samples: Sequence[RawSample],
        range_start: datetime,
        range_end: datetime,
        hourly: bool,
    ) -> list[ChartPoint]:
        """Bin samples into buckets.

        Hourly series always have 24 points for the day of ``range_start``.
        Daily series have one point per calendar day in
        ``[range_start, range_end)``. Buckets without samples are 0.
        """
        if hourly:
            day_start = start_of_day(range_start, self._tz)
            starts = [add_hours(day_start, hour, self._tz) for hour in range(HOURS_PER_DAY)]
            window_end = add_hours(day_start, HOURS_PER_DAY, self._tz)
            labels = [hour_label(s) for s in starts]
        else:
            starts = iter_day_starts(range_start, range_end, self._tz)
            window_end = add_days(starts[-1], 1, self._tz) if starts else None
            labels = [day_label(s) for s in starts]

        grouped: list[list[RawSample]] = [[] for _ in starts]
        if window_end is not None:
            for sample in samples:
                moment = localize(sample.start_time, self._tz)
                if not starts[0] <= moment < window_end:
                    continue
                grouped[bisect_right(starts, moment) - 1].append(sample)

        return [
            ChartPoint(timestamp=start, value=self._bucket_value(category, bucket), label=label)
            for start, bucket, label in zip(starts, grouped, labels, strict=True)
        ]

    @staticmethod
    def _bucket_value(category: Category, samples: Sequence[RawSample]) -> float:
        match category.aggregation_kind:
            case AggregationKind.EVENT_COUNT:
                return float(len(samples))
            case AggregationKind.DURATION_FROM_INTERVALS:
                return float(sum(s.duration_minutes for s in samples))
            case AggregationKind.CUMULATIVE_SUM:
                return float(sum(s.numeric_value for s in samples if s.numeric_value is not None))
            case AggregationKind.DISCRETE_AVERAGE:
                return mean([s.numeric_value for s in samples if s.numeric_value is not None])
            case _:
                raise ValueError(f"Unsupported aggregation kind: {category.aggregation_kind}")
