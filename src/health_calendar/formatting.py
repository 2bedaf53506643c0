"""Human-readable value formatting for stats and calendar records."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FormatSpec:
    """How a category's numeric values are printed."""

    decimal_places: int = 1
    use_grouping: bool = False

    def format(self, value: float) -> str:
        grouping = "," if self.use_grouping else ""
        return f"{value:{grouping}.{self.decimal_places}f}"


# Common formats
WHOLE_GROUPED = FormatSpec(decimal_places=0, use_grouping=True)
WHOLE = FormatSpec(decimal_places=0, use_grouping=False)
ONE_DECIMAL = FormatSpec(decimal_places=1, use_grouping=False)


def format_duration(minutes: float) -> str:
    """Format minutes as ``"{h}h {m}m"``, or ``"{m}m"`` under an hour.

    Components are truncated, not rounded.
    """
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


# Display names for workout activity types, keyed by normalized type
WORKOUT_ACTIVITY_NAMES = {
    "running": "Running",
    "cycling": "Cycling",
    "walking": "Walking",
    "swimming": "Swimming",
    "yoga": "Yoga",
    "functionalstrengthtraining": "Strength Training",
    "hiking": "Hiking",
    "traditionalstrengthtraining": "Traditional Strength",
    "elliptical": "Elliptical",
    "stairclimbing": "Stair Climbing",
    # Health Auto Export short names
    "run": "Running",
    "cycle": "Cycling",
    "walk": "Walking",
    "swim": "Swimming",
    "poolswim": "Swimming",
    "hike": "Hiking",
    "stairs": "Stair Climbing",
}


def workout_display_name(activity_type: str) -> str:
    """Map a raw workout type (``HKWorkoutActivityTypeRunning``, ``Running``) to a label."""
    name = activity_type.lower().replace(" ", "").replace("_", "")
    for prefix in ("hkworkoutactivitytype", "workout"):
        if name.startswith(prefix) and len(name) > len(prefix):
            name = name[len(prefix) :]
    # Health Auto Export suffixes outdoor/indoor variants
    for suffix in ("outdoor", "indoor"):
        if name.startswith(suffix):
            name = name[len(suffix) :]
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return WORKOUT_ACTIVITY_NAMES.get(name, "Workout")


def format_workout_detail(
    activity_type: str,
    duration_min: float,
    active_calories: float | None = None,
) -> str:
    """Format a workout as ``"Running (45 min, 350 cal)"``."""
    detail = f"{workout_display_name(activity_type)} ({int(duration_min)} min"
    if active_calories is not None:
        detail += f", {int(active_calories)} cal"
    return detail + ")"
