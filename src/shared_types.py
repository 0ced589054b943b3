"""Shared enums and types for chronos."""

from enum import StrEnum


class TimeOfDay(StrEnum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class DayType(StrEnum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"


class CurrentLoad(StrEnum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


class EnergyIndicator(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    POST_FOCUS_DIP = "post_focus_dip"


class SuggestionType(StrEnum):
    GAP_FILL = "gap_fill"
    BUFFER_ADD = "buffer_add"
    TIME_ESTIMATE = "time_estimate"
    PRIORITY_ORDER = "priority_order"
    NOTIFICATION_HOLD = "notification_hold"
    MORNING_ROUTINE = "morning_routine"
    GOAL_NUDGE = "goal_nudge"
    CONFLICT_RESOLVE = "conflict_resolve"
    RECOVERY_SUGGEST = "recovery_suggest"


class UserResponse(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"
    IGNORED = "ignored"


class HypothesisStatus(StrEnum):
    TESTING = "testing"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    STALE = "stale"


class TriggerType(StrEnum):
    TIME_OF_DAY = "time_of_day"
    EVENT_END = "event_end"
    GAP_DETECTED = "gap_detected"


class ActionType(StrEnum):
    SKIP_SUGGESTION = "skip_suggestion"
    SUGGEST_ALTERNATIVE = "suggest_alternative"
    ADJUST_ESTIMATE = "adjust_estimate"
    AUTO_BLOCK = "auto_block"
    AUTO_FIX = "auto_fix"


class NotificationType(StrEnum):
    LEARNED = "learned"
    AUTO_ACTION = "auto_action"
    DECAY_WARNING = "decay_warning"


OVERRIDE_RESPONSES = frozenset({UserResponse.REJECTED, UserResponse.MODIFIED})
