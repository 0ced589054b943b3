"""Build InteractionContext snapshots from the clock and recent activity."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from shared_types import CurrentLoad, DayType, TimeOfDay

from .models import Interaction, InteractionContext

# Overrides among this many recent interactions feed recent_override_count
RECENT_OVERRIDE_WINDOW = 20


def time_of_day_for(hour: int) -> TimeOfDay:
    if 5 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def day_type_for(weekday: int) -> DayType:
    """Python weekday numbering: Monday is 0, Saturday/Sunday are 5/6."""
    return DayType.WEEKEND if weekday >= 5 else DayType.WEEKDAY


def count_recent_overrides(
    interactions: Sequence[Interaction], window: int = RECENT_OVERRIDE_WINDOW
) -> int:
    return sum(1 for i in interactions[-window:] if i.is_override)


def build_context(
    now: datetime,
    recent_interactions: Sequence[Interaction] = (),
    active_goal_ids: Iterable[str] = (),
    **overrides,
) -> InteractionContext:
    """Snapshot for `now`; keyword overrides replace any derived field."""
    weekday = now.weekday()
    fields = {
        "time_of_day": time_of_day_for(now.hour),
        "day_of_week": weekday,
        "day_type": day_type_for(weekday),
        "current_load": CurrentLoad.MODERATE,
        "previous_task_type": None,
        "minutes_since_previous_task": None,
        "energy_indicator": None,
        "recent_override_count": count_recent_overrides(recent_interactions),
        "active_goal_ids": frozenset(active_goal_ids),
    }
    unknown = set(overrides) - set(fields)
    if unknown:
        raise ValueError(f"Unknown context fields: {sorted(unknown)}")
    fields.update(overrides)
    return InteractionContext(**fields)
