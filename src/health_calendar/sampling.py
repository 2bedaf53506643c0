"""Single seam where sample source failures degrade to empty results."""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from .categories import Category
from .errors import SourceQueryError
from .interfaces import SampleSource
from .metrics import SOURCE_QUERY_FAILURES
from .models import RawSample

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SampleFetch:
    """Samples for one category, and whether the query failed."""

    category: Category
    samples: list[RawSample] = field(default_factory=list)
    failed: bool = False


async def fetch_samples(
    source: SampleSource,
    category: Category,
    start: datetime,
    end: datetime,
    *,
    daily_totals: bool = False,
) -> SampleFetch:
    """Fetch samples, treating a failed query as empty.

    Args:
        source: Sample source to query.
        category: Category to fetch.
        start: Inclusive range start.
        end: Exclusive range end.
        daily_totals: Use one all-day sample per day for categories whose
            natural unit is a daily cumulative amount.

    Returns:
        SampleFetch with ``failed`` set when the source raised
        SourceQueryError.
    """
    try:
        if daily_totals and category.aggregates_daily:
            samples = await source.fetch_aggregated_daily(category, start, end)
        else:
            samples = await source.fetch(category, start, end)
    except SourceQueryError as e:
        logger.warning(
            "source_query_failed",
            category=category.name,
            start=start.isoformat(),
            end=end.isoformat(),
            error=str(e),
        )
        SOURCE_QUERY_FAILURES.labels(category=category.name).inc()
        return SampleFetch(category=category, failed=True)

    return SampleFetch(category=category, samples=list(samples))
