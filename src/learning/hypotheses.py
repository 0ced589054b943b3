"""Hypothesis generation from override clusters and the testing state machine.

A hypothesis moves testing -> confirmed | rejected | stale and never leaves a
terminal state. Confirmation promotes it to a pattern in the same step, so a
hypothesis with enough confirmations is never observed still testing.
"""

from collections import Counter
from datetime import datetime
from typing import Optional

import structlog

from cli.config_models import LearningConfig
from observability import metrics
from shared_types import HypothesisStatus, NotificationType, SuggestionType

from .interaction_log import InteractionLog
from .models import (
    ContextMatchers,
    Hypothesis,
    Interaction,
    InteractionContext,
    TriggerCondition,
    new_id,
)
from .notifications import NotificationQueue
from .patterns import PatternStore
from .templates import describe_observation, select_template

logger = structlog.get_logger()

COLLECTION = "hypotheses"

# Dimensions considered when deriving the shared context of an override cluster
COMMON_CONTEXT_DIMENSIONS = ("time_of_day", "day_type", "energy_indicator")


def find_common_context(interactions: list[Interaction], ratio: float = 0.7) -> ContextMatchers:
    """Keep a dimension's value when it appears in at least `ratio` of the interactions."""
    if not interactions:
        return ContextMatchers()

    threshold = len(interactions) * ratio
    common = {}
    for dimension in COMMON_CONTEXT_DIMENSIONS:
        counts = Counter(
            getattr(i.context, dimension)
            for i in interactions
            if getattr(i.context, dimension) is not None
        )
        if not counts:
            continue
        value, count = counts.most_common(1)[0]
        if count >= threshold:
            common[dimension] = value
    return ContextMatchers(common)


class HypothesisEngine:
    """Detects repeated overrides and tests candidate rules before trusting them."""

    def __init__(
        self,
        log: InteractionLog,
        patterns: PatternStore,
        notifications: NotificationQueue,
        config: Optional[LearningConfig] = None,
        tracker=None,
    ):
        self.log = log
        self.patterns = patterns
        self.notifications = notifications
        self.config = config or LearningConfig()
        self.tracker = tracker
        self._hypotheses: dict[str, Hypothesis] = {}

    def _changed(self, hypothesis: Hypothesis) -> None:
        if self.tracker is not None:
            self.tracker.mark(COLLECTION, hypothesis)

    def get(self, hypothesis_id: str) -> Optional[Hypothesis]:
        return self._hypotheses.get(hypothesis_id)

    def all(self) -> list[Hypothesis]:
        return list(self._hypotheses.values())

    def active(self) -> list[Hypothesis]:
        return [h for h in self._hypotheses.values() if h.is_active]

    def replace_all(self, hypotheses: list[Hypothesis]) -> None:
        self._hypotheses = {h.id: h for h in sorted(hypotheses, key=lambda h: h.created_at)}

    def find_active_for(
        self, suggestion_type: SuggestionType, context: Optional[InteractionContext] = None
    ) -> Optional[Hypothesis]:
        """Testing hypothesis for a type whose matchers the context satisfies (any, if no context)."""
        for h in self._hypotheses.values():
            if not h.is_active or h.trigger_condition.suggestion_type != suggestion_type:
                continue
            if context is None or h.trigger_condition.context_matchers.matches(context):
                return h
        return None

    def consider(self, interaction: Interaction, now: datetime) -> Optional[Hypothesis]:
        """Generate a hypothesis when this override completes a cluster of similar ones."""
        if not interaction.is_override:
            return None

        cfg = self.config
        similar = self.log.similar_overrides(
            interaction.suggestion_type,
            interaction.context,
            now,
            window_days=cfg.observation_window_days,
            threshold=cfg.similarity_threshold,
            weights=cfg.similarity_weights.model_dump(),
        )
        if len(similar) < cfg.hypothesis_threshold:
            return None

        existing = self.find_active_for(interaction.suggestion_type, interaction.context)
        if existing is not None:
            logger.debug("hypothesis_duplicate_skipped", hypothesis_id=existing.id)
            return None

        if len(self.active()) >= cfg.max_active_hypotheses:
            logger.debug("hypothesis_cap_reached", active=len(self.active()))
            return None

        hypothesis = self._generate(similar, interaction, now)
        self._hypotheses[hypothesis.id] = hypothesis
        self._changed(hypothesis)
        metrics.counter("hypotheses_created")
        logger.info(
            "hypothesis_created",
            hypothesis_id=hypothesis.id,
            suggestion_type=interaction.suggestion_type.value,
            matchers=hypothesis.trigger_condition.context_matchers.to_dict(),
            evidence=len(similar),
        )
        return hypothesis

    def _generate(
        self, similar: list[Interaction], trigger: Interaction, now: datetime
    ) -> Hypothesis:
        common = find_common_context(similar, self.config.common_context_ratio)
        template = select_template(trigger.suggestion_type, common)
        return Hypothesis(
            id=new_id(),
            created_at=now,
            trigger_interaction_ids=[i.id for i in similar],
            observation=describe_observation(trigger.suggestion_type, len(similar), common),
            hypothesis=template.hypothesis,
            test_approach=template.test_approach,
            trigger_condition=TriggerCondition(trigger.suggestion_type, common),
            confidence_required=self.config.confirmation_required,
        )

    def record_test(
        self, hypothesis_id: str, accepted: bool, now: datetime
    ) -> Optional[Hypothesis]:
        """Count one test outcome; resolve the hypothesis when a threshold is reached.

        Unknown or already-resolved hypotheses are ignored.
        """
        h = self._hypotheses.get(hypothesis_id)
        if h is None or not h.is_active:
            logger.debug("hypothesis_test_ignored", hypothesis_id=hypothesis_id)
            return None

        h.tests_run += 1
        if accepted:
            h.confirmations += 1
            if h.confirmations >= h.confidence_required:
                self._confirm(h, now)
        else:
            h.rejections += 1
            if h.rejections >= h.confidence_required:
                h.resolve(HypothesisStatus.REJECTED, now)
                metrics.counter("hypotheses_rejected")

        # Logical timeout: counted in tests, not wall-clock time
        if h.is_active and h.tests_run >= self.config.max_tests_before_stale:
            h.resolve(HypothesisStatus.STALE, now)
            metrics.counter("hypotheses_stale")

        self._changed(h)
        if not h.is_active:
            logger.info(
                "hypothesis_resolved",
                hypothesis_id=h.id,
                status=h.status.value,
                tests_run=h.tests_run,
                confirmations=h.confirmations,
                rejections=h.rejections,
            )
        return h

    def _confirm(self, h: Hypothesis, now: datetime) -> None:
        h.resolve(HypothesisStatus.CONFIRMED, now)
        pattern = self.patterns.promote_from_hypothesis(h, now)
        h.resulting_pattern_id = pattern.id
        metrics.counter("hypotheses_confirmed")

        if self.config.notify_on_new_pattern:
            self.notifications.add(
                NotificationType.LEARNED,
                f"Learned: {pattern.description}",
                now,
                pattern_id=pattern.id,
            )
