"""Tests for HealthCalendarService."""

from datetime import UTC, date, datetime, timedelta

import pytest

from health_calendar.errors import HealthCalendarError, UnknownCategoryError
from health_calendar.interfaces import TextSummaryService
from health_calendar.models import RawSample
from health_calendar.service import HealthCalendarService, gather_all

from conftest import at


def quantity(moment: datetime, value: float) -> RawSample:
    return RawSample(start_time=moment, end_time=moment, numeric_value=value)


def interval(start: datetime, minutes: float) -> RawSample:
    return RawSample(start_time=start, end_time=start + timedelta(minutes=minutes))


class EchoSummarizer(TextSummaryService):
    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return "Good week."


class BrokenSummarizer(TextSummaryService):
    async def generate(self, prompt: str) -> str:
        raise RuntimeError("model unavailable")


@pytest.fixture
def service(source, store, sink, fixed_clock):
    return HealthCalendarService(source, store, sink, clock=fixed_clock)


class TestPeriodStats:
    """Tests for cached period statistics."""

    async def test_stats_by_name(self, service, source):
        source.add("Steps", quantity(at(2), 5), quantity(at(4), 3))

        stats = await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))

        assert stats.total_value == 8
        assert stats.units_with_data == 2

    async def test_second_call_is_served_from_cache(self, service, source):
        source.add("Steps", quantity(at(2), 5))

        first = await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))
        second = await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))

        assert first is second
        assert len(source.calls) == 1
        assert service.cache.get_stats()["hits"] == 1

    async def test_clear_session_cache_forces_refetch(self, service, source):
        source.add("Steps", quantity(at(2), 5))
        await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))

        service.clear_session_cache()
        source.add("Steps", quantity(at(3), 7))
        stats = await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))

        assert stats.total_value == 12
        assert len(source.calls) == 2

    async def test_end_is_clamped_to_now(self, service, source):
        # Clock is 2024-01-20 18:00
        source.add("Steps", quantity(at(20, 9), 100), quantity(at(20, 20), 50))

        stats = await service.get_period_stats("Steps", date(2024, 1, 20), date(2024, 1, 27))

        assert stats.total_value == 100
        _, _, fetch_end = source.calls[0]
        assert fetch_end == datetime(2024, 1, 20, 18, 0, tzinfo=UTC)

    async def test_clamped_windows_do_not_share_cache_entries(self, service, source):
        # Clock is 2024-01-20 18:00, so both windows end at or before now
        source.add("Steps", quantity(at(19), 50), quantity(at(20, 9), 100))

        this_week = await service.get_period_stats("Steps", date(2024, 1, 19), date(2024, 1, 27))
        through_yesterday = await service.get_period_stats(
            "Steps", date(2024, 1, 19), date(2024, 1, 20)
        )

        assert this_week.total_value == 150
        assert through_yesterday.total_value == 50
        assert len(source.calls) == 2

    async def test_future_range_has_no_stats(self, service, source):
        assert await service.get_period_stats("Steps", date(2024, 2, 1), date(2024, 2, 5)) is None
        assert source.calls == []

    async def test_failed_query_is_not_cached(self, service, source):
        source.failing.add("Steps")
        assert await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5)) is None

        source.failing.clear()
        source.add("Steps", quantity(at(2), 5))
        stats = await service.get_period_stats("Steps", date(2024, 1, 1), date(2024, 1, 5))

        assert stats.total_value == 5

    async def test_unknown_category(self, service):
        with pytest.raises(UnknownCategoryError):
            await service.get_period_stats("Telepathy", date(2024, 1, 1), date(2024, 1, 5))

    async def test_monthly_stats(self, service, source):
        source.add("Steps", quantity(at(2), 5), quantity(at(15), 10), quantity(at(3, month=2), 99))

        stats = await service.get_monthly_stats("Steps", date(2024, 1, 10))

        assert stats.total_value == 15

    async def test_all_period_stats_drops_empty_categories(self, service, source):
        source.add("Steps", quantity(at(2), 5))
        source.add("Workouts", interval(at(3, 7), 30))

        all_stats = await service.get_all_period_stats(date(2024, 1, 1), date(2024, 1, 5))

        assert list(all_stats) == ["Steps", "Workouts"]


class TestCharts:
    """Tests for chart data."""

    async def test_single_day_defaults_to_hourly(self, service, source):
        source.add("Steps", quantity(at(15, 8), 100))

        points = await service.get_chart_data("Steps", date(2024, 1, 15), date(2024, 1, 16))

        assert len(points) == 24
        assert points[8].value == 100

    async def test_longer_window_defaults_to_daily(self, service, source):
        points = await service.get_chart_data("Steps", date(2024, 1, 1), date(2024, 1, 8))

        assert len(points) == 7
        assert all(p.value == 0 for p in points)

    async def test_default_window_is_trailing_two_weeks(self, service):
        points = await service.get_chart_data("Steps")

        assert len(points) == 14
        assert points[-1].label == "1/20"

    async def test_hourly_and_daily_cached_separately(self, service, source):
        await service.get_chart_data("Steps", date(2024, 1, 15), date(2024, 1, 16), hourly=True)
        daily = await service.get_chart_data("Steps", date(2024, 1, 15), date(2024, 1, 16), hourly=False)

        assert len(daily) == 1
        assert len(source.calls) == 2

    async def test_chart_cache_hit(self, service, source):
        first = await service.get_chart_data("Steps", date(2024, 1, 1), date(2024, 1, 8))
        second = await service.get_chart_data("Steps", date(2024, 1, 1), date(2024, 1, 8))

        assert first == second
        assert len(source.calls) == 1


class TestDaysWithData:
    """Tests for calendar-day views."""

    async def test_days_with_data(self, service, source):
        source.add("Steps", quantity(at(2), 5))
        source.add("Sleep", interval(at(4, 1), 400))

        days = await service.get_days_with_data(date(2024, 1, 1), date(2024, 1, 8))

        assert days == {date(2024, 1, 2), date(2024, 1, 4)}

    async def test_zero_total_days_are_not_days_with_data(self, service, source):
        source.add("Steps", quantity(at(2), 0))

        assert await service.get_days_with_data(date(2024, 1, 1), date(2024, 1, 8)) == set()

    async def test_emojis_deduplicated_in_category_order(self, service, source, registry):
        source.add("Workouts", interval(at(2, 7), 30), interval(at(2, 18), 30))
        source.add("Steps", quantity(at(2), 5))

        emojis = await service.get_days_with_data_and_emojis(date(2024, 1, 1), date(2024, 1, 8))

        assert emojis == {date(2024, 1, 2): [registry.get("Steps").emoji, registry.get("Workouts").emoji]}


class TestSummary:
    """Tests for period summaries."""

    async def test_summary_text(self, service, source):
        source.add("Steps", quantity(at(2), 5000), quantity(at(3), 7000))
        source.add("Workouts", interval(at(2, 7), 30))

        summary = await service.collect_summary(date(2024, 1, 1), date(2024, 1, 8))
        text = summary.to_summary_text()

        assert text.splitlines() == [
            "PERIOD: 2024-01-01 to 2024-01-08",
            "  Steps: 12,000 steps (avg 6,000 over 2 days)",
            "  Workouts: 1 workout",
        ]

    async def test_empty_summary(self, service):
        summary = await service.collect_summary(date(2024, 1, 1), date(2024, 1, 8))
        assert "No data recorded." in summary.to_summary_text()

    async def test_generate_summary(self, service, source):
        source.add("Steps", quantity(at(2), 5000))
        summarizer = EchoSummarizer()

        text = await service.generate_summary(date(2024, 1, 1), date(2024, 1, 8), summarizer)

        assert text == "Good week."
        assert "Steps: 5,000 steps" in summarizer.prompts[0]

    async def test_generate_summary_failure_returns_none(self, service, source):
        source.add("Steps", quantity(at(2), 5000))

        assert await service.generate_summary(date(2024, 1, 1), date(2024, 1, 8), BrokenSummarizer()) is None


class TestSyncDelegation:
    """Tests for the ledger operations exposed by the service."""

    async def test_sync_enabled_categories_by_name(self, service, source, sink):
        source.add("Steps", quantity(at(2), 5))
        source.add("Workouts", interval(at(2, 7), 30))

        outcome = await service.sync(date(2024, 1, 1), date(2024, 1, 7), ["Workouts"])

        assert outcome.created == 1
        assert [c.name for _, c in sink.records.values()] == ["Workouts"]
        assert service.is_range_synced(date(2024, 1, 1), date(2024, 1, 7)) is not None
        assert service.total_record_count == 1
        assert date(2024, 1, 7) in service.get_synced_days()

    async def test_all_categories_when_none_enabled(self, service, source, sink):
        source.add("Steps", quantity(at(2), 5))
        source.add("Workouts", interval(at(2, 7), 30))

        outcome = await service.sync(date(2024, 1, 1), date(2024, 1, 7))

        assert outcome.created == 2

    async def test_preview_then_sync_then_undo(self, service, source, sink):
        source.add("Workouts", interval(at(2, 7), 30), interval(at(4, 7), 30))

        previews = await service.preview(date(2024, 1, 1), date(2024, 1, 7))
        outcome = await service.sync(date(2024, 1, 1), date(2024, 1, 7))
        deletion = await service.delete_range(outcome.synced_range.id)

        assert len(previews) == outcome.created == deletion.deleted == 2
        assert service.history() == []

    async def test_history_survives_restart(self, source, store, sink, fixed_clock):
        source.add("Workouts", interval(at(2, 7), 30))
        first = HealthCalendarService(source, store, sink, clock=fixed_clock)
        await first.start()
        await first.sync(date(2024, 1, 1), date(2024, 1, 7))

        second = HealthCalendarService(source, store, sink, clock=fixed_clock)
        await second.start()

        assert len(second.history()) == 1
        assert (await second.sync(date(2024, 1, 1), date(2024, 1, 7))).already_synced

    async def test_delete_all(self, service, source, sink):
        source.add("Workouts", interval(at(2, 7), 30))
        await service.sync(date(2024, 1, 1), date(2024, 1, 7))

        deletion = await service.delete_all()

        assert deletion.deleted == 1
        assert sink.records == {}

    async def test_sync_without_sink(self, source, store):
        service = HealthCalendarService(source, store)
        with pytest.raises(HealthCalendarError, match="No record sink"):
            await service.sync(date(2024, 1, 1), date(2024, 1, 7))


class TestGatherAll:
    """Tests for gather_all."""

    async def test_results_in_order(self):
        async def value(n):
            return n

        assert await gather_all([value(1), value(2)]) == [1, 2]

    async def test_first_failure_raised_after_all_finish(self):
        finished = []

        async def ok():
            finished.append("ok")
            return 1

        async def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await gather_all([boom(), ok()])
        assert finished == ["ok"]
