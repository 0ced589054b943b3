"""Confirmed patterns — promotion, application, and confidence decay."""

import re
from datetime import datetime
from typing import Optional

import structlog

from cli.config_models import LearningConfig
from observability import metrics
from shared_types import (
    ActionType,
    EnergyIndicator,
    HypothesisStatus,
    NotificationType,
    SuggestionType,
    TriggerType,
)

from .models import (
    Hypothesis,
    InteractionContext,
    Pattern,
    PatternAction,
    PatternTrigger,
    TriggerCondition,
    new_id,
)
from .notifications import NotificationQueue

logger = structlog.get_logger()

COLLECTION = "patterns"

# Checked in order against the lowercased test approach; first hit wins
_ACTION_KEYWORD_RULES: tuple[tuple[tuple[str, ...], ActionType, dict], ...] = (
    (("recovery", "break"), ActionType.SUGGEST_ALTERNATIVE, {"suggest": "recovery"}),
    (("protect", "do not"), ActionType.SKIP_SUGGESTION, {}),
)
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_DECREASE_WORDS = ("decrease", "reduce", "shorten", "cut")


def clamp_confidence(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 6)


def infer_trigger_type(condition: TriggerCondition) -> TriggerType:
    if condition.context_matchers.get("energy_indicator") == EnergyIndicator.POST_FOCUS_DIP:
        return TriggerType.EVENT_END
    if condition.suggestion_type == SuggestionType.GAP_FILL:
        return TriggerType.GAP_DETECTED
    return TriggerType.TIME_OF_DAY


def infer_action(test_approach: str) -> PatternAction:
    """Map a test-approach sentence to the action a confirmed pattern takes."""
    text = test_approach.lower()
    for keywords, action_type, params in _ACTION_KEYWORD_RULES:
        if any(k in text for k in keywords):
            return PatternAction(action_type, dict(params))

    match = _PERCENT_RE.search(text)
    if match:
        fraction = float(match.group(1)) / 100
        if any(w in text for w in _DECREASE_WORDS):
            fraction = -fraction
        return PatternAction(
            ActionType.ADJUST_ESTIMATE, {"multiplier": round(1 + fraction, 4)}
        )

    return PatternAction(ActionType.SUGGEST_ALTERNATIVE, {})


class PatternStore:
    """Holds trusted patterns and adjusts their confidence as they are used or contradicted."""

    def __init__(
        self,
        config: Optional[LearningConfig] = None,
        notifications: Optional[NotificationQueue] = None,
        tracker=None,
    ):
        self.config = config or LearningConfig()
        self.notifications = notifications or NotificationQueue()
        self.tracker = tracker
        self._patterns: dict[str, Pattern] = {}

    def _changed(self, pattern: Pattern) -> None:
        if self.tracker is not None:
            self.tracker.mark(COLLECTION, pattern)

    def __len__(self) -> int:
        return len(self._patterns)

    def get(self, pattern_id: str) -> Optional[Pattern]:
        return self._patterns.get(pattern_id)

    def all(self) -> list[Pattern]:
        return list(self._patterns.values())

    def replace_all(self, patterns: list[Pattern]) -> None:
        self._patterns = {p.id: p for p in sorted(patterns, key=lambda p: p.confirmed_at)}

    def is_active(self, pattern: Pattern) -> bool:
        return pattern.confidence > self.config.active_pattern_threshold

    def confirmed(self) -> list[Pattern]:
        """Patterns still trusted (confidence above the active threshold)."""
        return [p for p in self._patterns.values() if self.is_active(p)]

    def for_suggestion_type(self, suggestion_type: SuggestionType) -> list[Pattern]:
        return [p for p in self._patterns.values() if p.trigger.suggestion_type == suggestion_type]

    def promote_from_hypothesis(self, hypothesis: Hypothesis, now: datetime) -> Pattern:
        if hypothesis.status != HypothesisStatus.CONFIRMED:
            raise ValueError(
                f"Only confirmed hypotheses can be promoted: {hypothesis.id} is {hypothesis.status}"
            )

        condition = hypothesis.trigger_condition
        pattern = Pattern(
            id=new_id(),
            description=hypothesis.hypothesis,
            trigger=PatternTrigger(
                type=infer_trigger_type(condition),
                suggestion_type=condition.suggestion_type,
                conditions=condition.context_matchers,
            ),
            action=infer_action(hypothesis.test_approach),
            confidence=clamp_confidence(self.config.initial_confidence),
            confirmed_at=now,
            source_hypothesis_id=hypothesis.id,
        )
        self._patterns[pattern.id] = pattern
        self._changed(pattern)
        metrics.counter("patterns_promoted")
        logger.info(
            "pattern_promoted",
            pattern_id=pattern.id,
            hypothesis_id=hypothesis.id,
            trigger=pattern.trigger.type.value,
            action=pattern.action.type.value,
        )
        return pattern

    def apply(
        self,
        context: InteractionContext,
        now: datetime,
        suggestion_type: Optional[SuggestionType] = None,
    ) -> list[PatternAction]:
        """Actions of every trusted pattern whose conditions the context satisfies.

        Each match counts as an application: count and timestamp are updated and
        confidence is boosted, whether or not the caller honors the action.
        """
        actions: list[PatternAction] = []
        for pattern in self.confirmed():
            if suggestion_type is not None and pattern.trigger.suggestion_type != suggestion_type:
                continue
            if not pattern.trigger.conditions.matches(context):
                continue

            actions.append(pattern.action.copy())
            pattern.application_count += 1
            pattern.last_applied = now
            pattern.confidence = clamp_confidence(
                pattern.confidence + self.config.confidence_boost_per_use
            )
            self._changed(pattern)
            metrics.counter("pattern_applications")
            logger.debug(
                "pattern_applied",
                pattern_id=pattern.id,
                confidence=pattern.confidence,
                application_count=pattern.application_count,
            )
        return actions

    def check_decay(
        self, pattern_id: str, was_overridden: bool, now: datetime
    ) -> Optional[Pattern]:
        """Lower confidence after a contradicting interaction; warn once past the threshold."""
        if not was_overridden:
            return None
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            return None

        pattern.overrides_since_confirm += 1
        pattern.confidence = clamp_confidence(
            pattern.confidence - self.config.confidence_decay_per_override
        )

        if (
            pattern.overrides_since_confirm >= self.config.decay_threshold
            and not pattern.decay_warning_issued
        ):
            pattern.decay_warning_issued = True
            metrics.counter("decay_warnings")
            logger.info(
                "pattern_decay_warning",
                pattern_id=pattern.id,
                overrides=pattern.overrides_since_confirm,
                confidence=pattern.confidence,
            )
            if self.config.ask_before_removing_pattern:
                self.notifications.add(
                    NotificationType.DECAY_WARNING,
                    _decay_message(pattern),
                    now,
                    pattern_id=pattern.id,
                )

        self._changed(pattern)
        return pattern

    def remove(self, pattern_id: str) -> bool:
        """Delete a pattern. Unknown ids are a no-op."""
        pattern = self._patterns.pop(pattern_id, None)
        if pattern is None:
            logger.debug("pattern_remove_unknown", pattern_id=pattern_id)
            return False
        if self.tracker is not None:
            self.tracker.mark_deleted(COLLECTION, pattern_id)
        logger.info("pattern_removed", pattern_id=pattern_id)
        return True


def _decay_message(pattern: Pattern) -> str:
    description = pattern.description
    if description:
        description = description[0].lower() + description[1:]
    return (
        f"I learned that {description}, but you've gone the other way "
        f"{pattern.overrides_since_confirm} times since. Should I forget this?"
    )
