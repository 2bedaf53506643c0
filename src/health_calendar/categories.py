"""Catalog of trackable health metric categories."""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .errors import UnknownCategoryError
from .formatting import ONE_DECIMAL, WHOLE, WHOLE_GROUPED, FormatSpec

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_source_name(name: str) -> str:
    """Normalize a provider metric name (``stepCount``, ``step_count``) for matching."""
    return _NON_ALNUM_RE.sub("", name.lower())


class AggregationKind(str, Enum):
    """How samples of a category reduce into per-bucket values."""

    CUMULATIVE_SUM = "cumulative_sum"
    DISCRETE_AVERAGE = "discrete_average"
    DURATION_FROM_INTERVALS = "duration_from_intervals"
    EVENT_COUNT = "event_count"


@dataclass(frozen=True)
class Category:
    """A named class of health metric with a fixed aggregation kind and unit."""

    name: str
    emoji: str
    aggregation_kind: AggregationKind
    unit_name: str
    plural_unit_name: str | None = None
    format_spec: FormatSpec = ONE_DECIMAL
    group: str = ""
    source_names: tuple[str, ...] = ()

    @property
    def aggregates_daily(self) -> bool:
        """Whether the natural unit of this category is a daily cumulative amount."""
        return self.aggregation_kind is AggregationKind.CUMULATIVE_SUM

    def unit_for_count(self, count: int) -> str:
        """Singular or plural unit label for ``count``."""
        if count == 1 or self.plural_unit_name is None:
            return self.unit_name
        return self.plural_unit_name

    def format_value(self, value: float) -> str:
        return self.format_spec.format(value)

    def matches_source_name(self, name: str) -> bool:
        normalized = normalize_source_name(name)
        return any(normalize_source_name(s) == normalized for s in self.source_names)


def _quantity(
    group: str,
    name: str,
    emoji: str,
    kind: AggregationKind,
    unit: str,
    spec: FormatSpec,
    *source_names: str,
) -> Category:
    return Category(
        name=name,
        emoji=emoji,
        aggregation_kind=kind,
        unit_name=unit,
        format_spec=spec,
        group=group,
        source_names=source_names,
    )


_SUM = AggregationKind.CUMULATIVE_SUM
_AVG = AggregationKind.DISCRETE_AVERAGE

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    # Activity
    _quantity("activity", "Steps", "👟", _SUM, "steps", WHOLE_GROUPED, "step_count", "steps"),
    _quantity(
        "activity", "Distance", "🏃", _SUM, "mi", ONE_DECIMAL,
        "walking_running_distance", "distance_walking_running",
    ),
    _quantity(
        "activity", "Active Cal", "🔥", _SUM, "cal", WHOLE_GROUPED,
        "active_energy", "active_energy_burned",
    ),
    _quantity(
        "activity", "Resting Cal", "⚡", _SUM, "cal", WHOLE_GROUPED,
        "basal_energy_burned", "resting_energy",
    ),
    _quantity("activity", "Flights", "🪜", _SUM, "flights", WHOLE_GROUPED, "flights_climbed"),
    _quantity(
        "activity", "Exercise", "💪", _SUM, "min exercise", WHOLE_GROUPED,
        "apple_exercise_time", "exercise_time",
    ),
    _quantity(
        "activity", "Stand", "🧍", _SUM, "min standing", WHOLE_GROUPED,
        "apple_stand_time", "stand_time",
    ),
    # Body measurements
    _quantity("body", "Height", "📏", _AVG, "in", ONE_DECIMAL, "height"),
    _quantity("body", "Weight", "⚖️", _AVG, "lbs", ONE_DECIMAL, "weight_body_mass", "body_mass"),
    _quantity("body", "BMI", "📊", _AVG, "BMI", ONE_DECIMAL, "body_mass_index"),
    _quantity("body", "Lean Mass", "💪", _AVG, "lbs", ONE_DECIMAL, "lean_body_mass"),
    _quantity("body", "Body Fat", "📈", _AVG, "%", ONE_DECIMAL, "body_fat_percentage"),
    # Heart
    _quantity("heart", "Heart Rate", "❤️", _AVG, "bpm", WHOLE, "heart_rate"),
    _quantity("heart", "Resting HR", "💓", _AVG, "bpm", WHOLE, "resting_heart_rate"),
    _quantity(
        "heart", "Walking HR", "🚶‍♂️", _AVG, "bpm", WHOLE, "walking_heart_rate_average"
    ),
    _quantity(
        "heart", "HRV", "📉", _AVG, "ms", ONE_DECIMAL,
        "heart_rate_variability", "heart_rate_variability_sdnn",
    ),
    # Respiratory
    _quantity("respiratory", "Respiration", "🌬️", _AVG, "br/min", ONE_DECIMAL, "respiratory_rate"),
    _quantity(
        "respiratory", "Oxygen", "🫁", _AVG, "% O₂", ONE_DECIMAL,
        "blood_oxygen_saturation", "oxygen_saturation",
    ),
    # Nutrition
    _quantity(
        "nutrition", "Calories", "🍽️", _SUM, "cal", WHOLE_GROUPED,
        "dietary_energy", "dietary_energy_consumed",
    ),
    _quantity("nutrition", "Protein", "🥩", _SUM, "g protein", ONE_DECIMAL, "protein"),
    _quantity("nutrition", "Carbs", "🍞", _SUM, "g carbs", ONE_DECIMAL, "carbohydrates"),
    _quantity("nutrition", "Fat", "🥑", _SUM, "g fat", ONE_DECIMAL, "total_fat"),
    _quantity("nutrition", "Water", "💧", _SUM, "fl oz", ONE_DECIMAL, "dietary_water", "water"),
    _quantity("nutrition", "Caffeine", "☕", _SUM, "mg", ONE_DECIMAL, "dietary_caffeine", "caffeine"),
    # Sleep and mindfulness
    Category(
        name="Sleep",
        emoji="😴",
        aggregation_kind=AggregationKind.DURATION_FROM_INTERVALS,
        unit_name="total",
        group="sleep",
        source_names=("sleep_analysis",),
    ),
    Category(
        name="Mindfulness",
        emoji="🧘",
        aggregation_kind=AggregationKind.DURATION_FROM_INTERVALS,
        unit_name="total",
        group="mindfulness",
        source_names=("mindful_minutes", "mindful_session"),
    ),
    # Workouts
    Category(
        name="Workouts",
        emoji="🏋️",
        aggregation_kind=AggregationKind.EVENT_COUNT,
        unit_name="workout",
        plural_unit_name="workouts",
        format_spec=WHOLE,
        group="workouts",
        source_names=("workouts",),
    ),
    # Blood
    _quantity("blood", "Glucose", "🩸", _AVG, "mg/dL", ONE_DECIMAL, "blood_glucose"),
    _quantity(
        "blood", "BP Systolic", "💉", _AVG, "mmHg", ONE_DECIMAL,
        "blood_pressure_systolic", "blood_pressure",
    ),
    _quantity(
        "blood", "BP Diastolic", "💉", _AVG, "mmHg", ONE_DECIMAL,
        "blood_pressure_diastolic", "blood_pressure",
    ),
)


class CategoryRegistry:
    """Read-only, ordered catalog of categories keyed by unique name."""

    def __init__(self, categories: Iterable[Category] = DEFAULT_CATEGORIES) -> None:
        self._categories: dict[str, Category] = {}
        for category in categories:
            if category.name in self._categories:
                raise ValueError(f"Duplicate category name '{category.name}'")
            self._categories[category.name] = category

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, name: object) -> bool:
        return name in self._categories

    def get(self, name: str) -> Category:
        try:
            return self._categories[name]
        except KeyError:
            raise UnknownCategoryError(name) from None

    def names(self) -> list[str]:
        return list(self._categories)

    def select(self, names: Iterable[str] | None = None) -> list[Category]:
        """Categories enabled by ``names`` in registry order; ``None`` means all."""
        if names is None:
            return list(self)
        wanted = set(names)
        for name in wanted:
            if name not in self._categories:
                raise UnknownCategoryError(name)
        return [c for c in self if c.name in wanted]

    def by_kind(self, kind: AggregationKind) -> list[Category]:
        return [c for c in self if c.aggregation_kind is kind]

    def for_source_name(self, name: str) -> list[Category]:
        """Categories fed by a provider metric name (several for blood pressure)."""
        return [c for c in self if c.matches_source_name(name)]
