"""Projection of samples into calendar record content."""

from .categories import Category
from .config import DEFAULT_SYNC_MARKER
from .models import CalendarRecord, PreviewRecord, RawSample


def build_record(
    sample: RawSample, category: Category, marker: str = DEFAULT_SYNC_MARKER
) -> CalendarRecord:
    """Build the record a sink creates for ``sample``.

    The marker in the notes identifies records this system created.
    """
    return CalendarRecord(
        title=f"{category.emoji} {sample.formatted_detail}",
        start=sample.start_time,
        end=sample.end_time,
        all_day=sample.is_all_day,
        notes=marker,
    )


def build_preview(sample: RawSample, category: Category) -> PreviewRecord:
    return PreviewRecord(
        title=f"{category.emoji} {category.name}",
        start_time=sample.start_time,
        end_time=sample.end_time,
        is_all_day=sample.is_all_day,
        details=sample.formatted_detail,
        emoji=category.emoji,
        category_name=category.name,
    )
