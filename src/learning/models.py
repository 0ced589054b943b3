"""Data models for the adaptive learning engine."""

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from shared_types import (
    OVERRIDE_RESPONSES,
    ActionType,
    CurrentLoad,
    DayType,
    EnergyIndicator,
    HypothesisStatus,
    NotificationType,
    SuggestionType,
    TimeOfDay,
    TriggerType,
    UserResponse,
)


def new_id() -> str:
    return uuid.uuid4().hex[:16]


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class InteractionContext:
    """Situational snapshot at the moment a suggestion was shown."""

    time_of_day: TimeOfDay
    day_of_week: int
    day_type: DayType
    current_load: CurrentLoad
    previous_task_type: Optional[str] = None
    minutes_since_previous_task: Optional[float] = None
    energy_indicator: Optional[EnergyIndicator] = None
    recent_override_count: int = 0
    active_goal_ids: frozenset[str] = frozenset()

    def __post_init__(self):
        # frozen: coerce through object.__setattr__
        object.__setattr__(self, "time_of_day", TimeOfDay(self.time_of_day))
        object.__setattr__(self, "day_type", DayType(self.day_type))
        object.__setattr__(self, "current_load", CurrentLoad(self.current_load))
        if self.energy_indicator is not None:
            object.__setattr__(self, "energy_indicator", EnergyIndicator(self.energy_indicator))
        object.__setattr__(self, "active_goal_ids", frozenset(self.active_goal_ids))

        if (
            isinstance(self.day_of_week, bool)
            or not isinstance(self.day_of_week, int)
            or not 0 <= self.day_of_week <= 6
        ):
            raise ValueError(f"day_of_week must be an int 0-6, got {self.day_of_week!r}")
        if self.minutes_since_previous_task is not None and self.minutes_since_previous_task < 0:
            raise ValueError(
                f"minutes_since_previous_task must be >= 0, got {self.minutes_since_previous_task}"
            )
        if self.recent_override_count < 0:
            raise ValueError(
                f"recent_override_count must be >= 0, got {self.recent_override_count}"
            )

    def to_dict(self) -> dict:
        return {
            "time_of_day": self.time_of_day.value,
            "day_of_week": self.day_of_week,
            "day_type": self.day_type.value,
            "current_load": self.current_load.value,
            "previous_task_type": self.previous_task_type,
            "minutes_since_previous_task": self.minutes_since_previous_task,
            "energy_indicator": self.energy_indicator.value if self.energy_indicator else None,
            "recent_override_count": self.recent_override_count,
            "active_goal_ids": sorted(self.active_goal_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InteractionContext":
        return cls(
            time_of_day=data["time_of_day"],
            day_of_week=data["day_of_week"],
            day_type=data["day_type"],
            current_load=data["current_load"],
            previous_task_type=data.get("previous_task_type"),
            minutes_since_previous_task=data.get("minutes_since_previous_task"),
            energy_indicator=data.get("energy_indicator"),
            recent_override_count=data.get("recent_override_count", 0),
            active_goal_ids=frozenset(data.get("active_goal_ids") or ()),
        )


# Dimensions a trigger condition may constrain, with the type values are coerced to
MATCHABLE_DIMENSIONS: dict[str, type] = {
    "time_of_day": TimeOfDay,
    "day_of_week": int,
    "day_type": DayType,
    "current_load": CurrentLoad,
    "previous_task_type": str,
    "energy_indicator": EnergyIndicator,
}


class ContextMatchers(Mapping):
    """Partial context: a dimension is constrained only when its key is present.

    Absent keys are wildcards. A present key must equal the context's value,
    so a context missing an optional field never satisfies a matcher on it.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        merged = {**(values or {}), **kwargs}
        normalized: dict[str, Any] = {}
        for key, value in merged.items():
            kind = MATCHABLE_DIMENSIONS.get(key)
            if kind is None:
                raise ValueError(
                    f"Unknown context dimension: {key}. Must be one of {sorted(MATCHABLE_DIMENSIONS)}"
                )
            if value is None:
                raise ValueError(f"Matcher for {key} needs a value; omit the key to match anything")
            normalized[key] = kind(value)
        self._values = normalized

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ContextMatchers({self._values!r})"

    def matches(self, context: InteractionContext) -> bool:
        """True when every present dimension equals the context's value."""
        return all(getattr(context, key) == value for key, value in self._values.items())

    def describe(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self._values.items())

    def __copy__(self) -> "ContextMatchers":
        return self

    def __deepcopy__(self, memo) -> "ContextMatchers":
        return self

    def to_dict(self) -> dict:
        return {k: (v.value if isinstance(v, Enum) else v) for k, v in self._values.items()}


@dataclass(frozen=True)
class Interaction:
    """One logged suggestion and the user's response to it."""

    id: str
    timestamp: datetime
    suggestion_type: SuggestionType
    suggestion_text: str
    user_response: UserResponse
    context: InteractionContext
    target_entity_id: Optional[str] = None
    user_correction: Optional[str] = None
    hypothesis_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "suggestion_type", SuggestionType(self.suggestion_type))
        object.__setattr__(self, "user_response", UserResponse(self.user_response))

    @property
    def is_override(self) -> bool:
        return self.user_response in OVERRIDE_RESPONSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "suggestion_type": self.suggestion_type.value,
            "suggestion_text": self.suggestion_text,
            "user_response": self.user_response.value,
            "context": self.context.to_dict(),
            "target_entity_id": self.target_entity_id,
            "user_correction": self.user_correction,
            "hypothesis_id": self.hypothesis_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Interaction":
        return cls(
            id=data["id"],
            timestamp=_parse_dt(data["timestamp"]),
            suggestion_type=data["suggestion_type"],
            suggestion_text=data.get("suggestion_text", ""),
            user_response=data["user_response"],
            context=InteractionContext.from_dict(data["context"]),
            target_entity_id=data.get("target_entity_id"),
            user_correction=data.get("user_correction"),
            hypothesis_id=data.get("hypothesis_id"),
        )


@dataclass(frozen=True)
class TriggerCondition:
    suggestion_type: SuggestionType
    context_matchers: ContextMatchers = field(default_factory=ContextMatchers)

    def __post_init__(self):
        object.__setattr__(self, "suggestion_type", SuggestionType(self.suggestion_type))
        if not isinstance(self.context_matchers, ContextMatchers):
            object.__setattr__(self, "context_matchers", ContextMatchers(self.context_matchers))

    def matches(self, suggestion_type: SuggestionType, context: InteractionContext) -> bool:
        return suggestion_type == self.suggestion_type and self.context_matchers.matches(context)

    def to_dict(self) -> dict:
        return {
            "suggestion_type": self.suggestion_type.value,
            "context_matchers": self.context_matchers.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TriggerCondition":
        return cls(
            suggestion_type=data["suggestion_type"],
            context_matchers=ContextMatchers(data.get("context_matchers") or {}),
        )


@dataclass
class Hypothesis:
    """Candidate behavioral rule under test."""

    id: str
    created_at: datetime
    trigger_interaction_ids: list[str]
    observation: str
    hypothesis: str
    test_approach: str
    trigger_condition: TriggerCondition
    confidence_required: int = 2
    tests_run: int = 0
    confirmations: int = 0
    rejections: int = 0
    status: HypothesisStatus = HypothesisStatus.TESTING
    resolved_at: Optional[datetime] = None
    resulting_pattern_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == HypothesisStatus.TESTING

    def resolve(self, status: HypothesisStatus, when: datetime) -> None:
        self.status = status
        self.resolved_at = when

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": _iso(self.created_at),
            "trigger_interaction_ids": list(self.trigger_interaction_ids),
            "observation": self.observation,
            "hypothesis": self.hypothesis,
            "test_approach": self.test_approach,
            "trigger_condition": self.trigger_condition.to_dict(),
            "confidence_required": self.confidence_required,
            "tests_run": self.tests_run,
            "confirmations": self.confirmations,
            "rejections": self.rejections,
            "status": HypothesisStatus(self.status).value,
            "resolved_at": _iso(self.resolved_at),
            "resulting_pattern_id": self.resulting_pattern_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Hypothesis":
        return cls(
            id=data["id"],
            created_at=_parse_dt(data["created_at"]),
            trigger_interaction_ids=list(data.get("trigger_interaction_ids") or []),
            observation=data.get("observation", ""),
            hypothesis=data.get("hypothesis", ""),
            test_approach=data.get("test_approach", ""),
            trigger_condition=TriggerCondition.from_dict(data["trigger_condition"]),
            confidence_required=data.get("confidence_required", 2),
            tests_run=data.get("tests_run", 0),
            confirmations=data.get("confirmations", 0),
            rejections=data.get("rejections", 0),
            status=HypothesisStatus(data.get("status", "testing")),
            resolved_at=_parse_dt(data.get("resolved_at")),
            resulting_pattern_id=data.get("resulting_pattern_id"),
        )


@dataclass(frozen=True)
class PatternTrigger:
    type: TriggerType
    suggestion_type: SuggestionType
    conditions: ContextMatchers = field(default_factory=ContextMatchers)

    def __post_init__(self):
        object.__setattr__(self, "type", TriggerType(self.type))
        object.__setattr__(self, "suggestion_type", SuggestionType(self.suggestion_type))
        if not isinstance(self.conditions, ContextMatchers):
            object.__setattr__(self, "conditions", ContextMatchers(self.conditions))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "suggestion_type": self.suggestion_type.value,
            "conditions": self.conditions.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternTrigger":
        return cls(
            type=data["type"],
            suggestion_type=data["suggestion_type"],
            conditions=ContextMatchers(data.get("conditions") or {}),
        )


@dataclass(frozen=True)
class PatternAction:
    type: ActionType
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "type", ActionType(self.type))

    def copy(self) -> "PatternAction":
        return replace(self, params=dict(self.params))

    def to_dict(self) -> dict:
        return {"type": self.type.value, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict) -> "PatternAction":
        return cls(type=data["type"], params=dict(data.get("params") or {}))


@dataclass
class Pattern:
    """Confirmed behavioral rule with a confidence score."""

    id: str
    description: str
    trigger: PatternTrigger
    action: PatternAction
    confidence: float
    confirmed_at: datetime
    source_hypothesis_id: str
    application_count: int = 0
    overrides_since_confirm: int = 0
    last_applied: Optional[datetime] = None
    decay_warning_issued: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "trigger": self.trigger.to_dict(),
            "action": self.action.to_dict(),
            "confidence": self.confidence,
            "confirmed_at": _iso(self.confirmed_at),
            "source_hypothesis_id": self.source_hypothesis_id,
            "application_count": self.application_count,
            "overrides_since_confirm": self.overrides_since_confirm,
            "last_applied": _iso(self.last_applied),
            "decay_warning_issued": self.decay_warning_issued,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pattern":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            trigger=PatternTrigger.from_dict(data["trigger"]),
            action=PatternAction.from_dict(data["action"]),
            confidence=float(data.get("confidence", 0.0)),
            confirmed_at=_parse_dt(data["confirmed_at"]),
            source_hypothesis_id=data.get("source_hypothesis_id", ""),
            application_count=data.get("application_count", 0),
            overrides_since_confirm=data.get("overrides_since_confirm", 0),
            last_applied=_parse_dt(data.get("last_applied")),
            decay_warning_issued=bool(data.get("decay_warning_issued", False)),
        )


@dataclass
class Notification:
    id: str
    type: NotificationType
    message: str
    created_at: datetime
    dismissed: bool = False
    pattern_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": NotificationType(self.type).value,
            "message": self.message,
            "created_at": _iso(self.created_at),
            "dismissed": self.dismissed,
            "pattern_id": self.pattern_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            id=data["id"],
            type=NotificationType(data["type"]),
            message=data.get("message", ""),
            created_at=_parse_dt(data["created_at"]),
            dismissed=bool(data.get("dismissed", False)),
            pattern_id=data.get("pattern_id"),
        )
