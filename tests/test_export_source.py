"""Tests for the Health Auto Export file source."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from health_calendar.errors import SourceQueryError
from health_calendar.export_source import ExportFileSampleSource
from health_calendar.sampling import fetch_samples

JAN_15 = datetime(2024, 1, 15, tzinfo=UTC)
JAN_17 = datetime(2024, 1, 17, tzinfo=UTC)
WIDE_START = datetime(2024, 1, 1, tzinfo=UTC)
WIDE_END = datetime(2024, 2, 1, tzinfo=UTC)


@pytest.fixture
def export_file(tmp_path: Path, sample_export_payload) -> Path:
    path = tmp_path / "export.json"
    path.write_text(json.dumps(sample_export_payload))
    return path


@pytest.fixture
def export_source(export_file, registry):
    return ExportFileSampleSource(export_file, registry)


class TestQuantities:
    """Tests for quantity metrics."""

    async def test_steps_newest_first(self, export_source, steps):
        samples = await export_source.fetch(steps, WIDE_START, WIDE_END)

        assert [s.numeric_value for s in samples] == [8000, 6523, 4000]
        assert samples[0].formatted_detail == "8,000 steps"

    async def test_range_is_end_exclusive(self, export_source, steps):
        samples = await export_source.fetch(steps, JAN_15, datetime(2024, 1, 16, 9, tzinfo=UTC))

        assert [s.numeric_value for s in samples] == [6523, 4000]

    async def test_avg_field_used_when_no_qty(self, export_source, heart_rate):
        samples = await export_source.fetch(heart_rate, WIDE_START, WIDE_END)

        assert [s.numeric_value for s in samples] == [72]
        assert samples[0].formatted_detail == "72 bpm"

    async def test_blood_pressure_split(self, export_source, registry):
        systolic = await export_source.fetch(registry.get("BP Systolic"), WIDE_START, WIDE_END)
        diastolic = await export_source.fetch(registry.get("BP Diastolic"), WIDE_START, WIDE_END)

        assert systolic[0].numeric_value == 120
        assert diastolic[0].numeric_value == 80

    async def test_daily_totals(self, export_source, steps):
        samples = await export_source.fetch_aggregated_daily(steps, JAN_15, JAN_17)

        assert [s.numeric_value for s in samples] == [10523, 8000]
        assert all(s.is_all_day for s in samples)
        assert samples[0].start_time == JAN_15
        assert samples[0].formatted_detail == "10,523 steps"

    async def test_daily_totals_need_cumulative_category(self, export_source, heart_rate):
        with pytest.raises(ValueError):
            await export_source.fetch_aggregated_daily(heart_rate, JAN_15, JAN_17)


class TestIntervalsAndWorkouts:
    """Tests for sleep, mindfulness and workouts."""

    async def test_sleep_interval(self, export_source, sleep):
        samples = await export_source.fetch(sleep, WIDE_START, WIDE_END)

        assert len(samples) == 1
        assert samples[0].duration_minutes == 480
        assert samples[0].formatted_detail == "8h 0m"

    async def test_mindful_minutes_become_interval(self, export_source, registry):
        samples = await export_source.fetch(registry.get("Mindfulness"), WIDE_START, WIDE_END)

        assert samples[0].duration_minutes == 10
        assert samples[0].formatted_detail == "10m"

    async def test_workout(self, export_source, workouts):
        samples = await export_source.fetch(workouts, WIDE_START, WIDE_END)

        assert len(samples) == 1
        assert samples[0].formatted_detail == "Running (45 min, 350 cal)"
        assert samples[0].numeric_value is None


class TestPayloadFormats:
    """Tests for payload shapes and failures."""

    def test_unparseable_items_are_skipped(self, registry, tmp_path, sample_export_payload):
        source = ExportFileSampleSource(tmp_path / "unused.json", registry)

        samples = source.parse_payload(sample_export_payload)

        # The "not a date" heart rate reading is dropped
        assert len(samples["Heart Rate"]) == 1

    def test_flat_legacy_format(self, registry, tmp_path):
        source = ExportFileSampleSource(tmp_path / "unused.json", registry)
        payload = {
            "data": [
                {"name": "step_count", "date": "2024-01-15 08:00:00 +0000", "qty": 100},
                {
                    "name": "workouts",
                    "data": [
                        {
                            "name": "Yoga",
                            "start": "2024-01-15 18:00:00 +0000",
                            "end": "2024-01-15 18:30:00 +0000",
                        }
                    ],
                },
            ]
        }

        samples = source.parse_payload(payload)

        assert samples["Steps"][0].numeric_value == 100
        assert samples["Workouts"][0].formatted_detail == "Yoga (30 min)"

    def test_naive_dates_use_configured_timezone(self, registry, tmp_path):
        from zoneinfo import ZoneInfo

        tz = ZoneInfo("America/New_York")
        source = ExportFileSampleSource(tmp_path / "unused.json", registry, tz=tz)
        payload = {"data": [{"name": "step_count", "date": "2024-01-15T08:00:00", "qty": 1}]}

        sample = source.parse_payload(payload)["Steps"][0]

        assert sample.start_time.tzinfo is tz
        assert sample.start_time.hour == 8

    async def test_missing_file_raises_source_error(self, registry, tmp_path, steps):
        source = ExportFileSampleSource(tmp_path / "missing.json", registry)

        with pytest.raises(SourceQueryError):
            await source.fetch(steps, WIDE_START, WIDE_END)

    async def test_invalid_json_raises_source_error(self, registry, tmp_path, steps):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        source = ExportFileSampleSource(path, registry)

        with pytest.raises(SourceQueryError):
            await source.fetch(steps, WIDE_START, WIDE_END)

    async def test_source_error_degrades_to_empty(self, registry, tmp_path, steps):
        source = ExportFileSampleSource(tmp_path / "missing.json", registry)

        fetched = await fetch_samples(source, steps, WIDE_START, WIDE_END)

        assert fetched.failed
        assert fetched.samples == []

    async def test_file_is_read_once(self, export_source, export_file, steps):
        await export_source.fetch(steps, WIDE_START, WIDE_END)
        export_file.unlink()

        samples = await export_source.fetch(steps, WIDE_START, WIDE_END)

        assert len(samples) == 3
