"""Hypothesis phrasing as a lookup table keyed by (suggestion type, context shape)."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from shared_types import EnergyIndicator, SuggestionType


class ContextShape(StrEnum):
    ANY = "any"
    POST_FOCUS_DIP = "post_focus_dip"


@dataclass(frozen=True)
class HypothesisTemplate:
    hypothesis: str
    test_approach: str

    def render(self, suggestion_type: SuggestionType) -> "HypothesisTemplate":
        return HypothesisTemplate(
            hypothesis=self.hypothesis.format(suggestion_type=suggestion_type.value),
            test_approach=self.test_approach.format(suggestion_type=suggestion_type.value),
        )


GENERIC_TEMPLATE = HypothesisTemplate(
    hypothesis="User prefers different behavior for {suggestion_type}",
    test_approach="Adjust {suggestion_type} suggestions based on learned preference",
)

HYPOTHESIS_TEMPLATES: dict[tuple[SuggestionType, ContextShape], HypothesisTemplate] = {
    (SuggestionType.GAP_FILL, ContextShape.POST_FOCUS_DIP): HypothesisTemplate(
        "User prefers recovery time after deep work blocks",
        "Suggest a break instead of tasks after deep work",
    ),
    (SuggestionType.GAP_FILL, ContextShape.ANY): HypothesisTemplate(
        "User prefers to protect small gaps rather than fill them",
        "Do not suggest filling small gaps",
    ),
    (SuggestionType.BUFFER_ADD, ContextShape.ANY): HypothesisTemplate(
        "User has sufficient buffer preferences already",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.TIME_ESTIMATE, ContextShape.ANY): HypothesisTemplate(
        "User prefers more generous time estimates",
        "Increase time estimates by 50%",
    ),
    (SuggestionType.PRIORITY_ORDER, ContextShape.ANY): HypothesisTemplate(
        "User has different priority logic than suggested",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.NOTIFICATION_HOLD, ContextShape.ANY): HypothesisTemplate(
        "User wants more notifications to come through",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.MORNING_ROUTINE, ContextShape.ANY): HypothesisTemplate(
        "User prefers a different morning routine than suggested",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.GOAL_NUDGE, ContextShape.ANY): HypothesisTemplate(
        "User finds goal nudges at this frequency annoying",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.CONFLICT_RESOLVE, ContextShape.ANY): HypothesisTemplate(
        "User prefers to resolve conflicts differently",
        GENERIC_TEMPLATE.test_approach,
    ),
    (SuggestionType.RECOVERY_SUGGEST, ContextShape.ANY): HypothesisTemplate(
        "User does not need recovery time in this context",
        "Suggest a break instead of tasks after deep work",
    ),
}


def context_shape(common_context: Mapping[str, object]) -> ContextShape:
    if common_context.get("energy_indicator") == EnergyIndicator.POST_FOCUS_DIP:
        return ContextShape.POST_FOCUS_DIP
    return ContextShape.ANY


def select_template(
    suggestion_type: SuggestionType, common_context: Mapping[str, object]
) -> HypothesisTemplate:
    """Most specific template for the type and context, rendered."""
    shape = context_shape(common_context)
    template = (
        HYPOTHESIS_TEMPLATES.get((suggestion_type, shape))
        or HYPOTHESIS_TEMPLATES.get((suggestion_type, ContextShape.ANY))
        or GENERIC_TEMPLATE
    )
    return template.render(suggestion_type)


def describe_observation(
    suggestion_type: SuggestionType, count: int, common_context: Mapping[str, object]
) -> str:
    ctx_desc = ", ".join(f"{k}={v}" for k, v in common_context.items())
    return (
        f"User rejected {suggestion_type.value} suggestions {count}x "
        f"when {ctx_desc or 'no specific context'}"
    )
