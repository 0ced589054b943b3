"""LearningEngine — the single owner of interaction, hypothesis, pattern, and notification state."""

import copy
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Optional

import structlog

from cli.config_models import LearningConfig, RetryConfig
from observability import metrics
from shared_types import ActionType, NotificationType, SuggestionType, UserResponse

from .hypotheses import HypothesisEngine
from .interaction_log import InteractionLog
from .models import (
    Hypothesis,
    Interaction,
    InteractionContext,
    Notification,
    Pattern,
    PatternAction,
    new_id,
)
from .notifications import NotificationQueue
from .patterns import PatternStore
from .repository import InMemoryRepository, LearningRepository
from .sync import WriteBehindSync
from .transparency import LearningSnapshot, TransparencyView

logger = structlog.get_logger()

INTERACTIONS = "interactions"


class LearningEngine:
    """Serialized writer over the learning state, with snapshot reads.

    Every mutation runs under one re-entrant lock, then makes a single
    write-behind flush attempt after the lock is released. Reads go through
    deep-copied snapshots, so callers never hold live objects that a later
    mutation could change.
    """

    def __init__(
        self,
        config: Optional[LearningConfig] = None,
        repository: Optional[LearningRepository] = None,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or LearningConfig()
        self.repository = repository if repository is not None else InMemoryRepository()
        self._clock = clock
        self._lock = threading.RLock()
        self._sync = WriteBehindSync(self.repository, retry_config, lock=self._lock)

        self.log = InteractionLog(max_size=self.config.max_interactions)
        self.notifications = NotificationQueue(tracker=self._sync)
        self.patterns = PatternStore(self.config, self.notifications, tracker=self._sync)
        self.hypotheses = HypothesisEngine(
            self.log, self.patterns, self.notifications, self.config, tracker=self._sync
        )

    @property
    def pending_writes(self) -> int:
        return self._sync.pending_count

    # -- ingestion ---------------------------------------------------------

    def log_interaction(
        self,
        suggestion_type: SuggestionType | str,
        suggestion_text: str,
        user_response: UserResponse | str,
        context: InteractionContext,
        *,
        target_entity_id: Optional[str] = None,
        user_correction: Optional[str] = None,
        hypothesis_id: Optional[str] = None,
    ) -> None:
        """Record a suggestion and the response, then run the learning side effects.

        Overrides may generate a hypothesis; a tagged interaction counts as a
        hypothesis test; every pattern learned for this suggestion type is
        checked for decay.
        """
        with self._lock:
            self._record(
                suggestion_type,
                suggestion_text,
                user_response,
                context,
                target_entity_id=target_entity_id,
                user_correction=user_correction,
                hypothesis_id=hypothesis_id,
            )
        self._sync.flush()

    def track_suggestion(
        self,
        suggestion_type: SuggestionType | str,
        suggestion_text: str,
        user_response: UserResponse | str,
        context: InteractionContext,
        **options,
    ) -> None:
        """log_interaction that tags the matching active hypothesis as the test subject."""
        with self._lock:
            if not options.get("hypothesis_id"):
                active = self.hypotheses.find_active_for(SuggestionType(suggestion_type), context)
                options["hypothesis_id"] = active.id if active else None
            self._record(suggestion_type, suggestion_text, user_response, context, **options)
        self._sync.flush()

    def _record(
        self,
        suggestion_type,
        suggestion_text,
        user_response,
        context,
        target_entity_id=None,
        user_correction=None,
        hypothesis_id=None,
    ) -> None:
        # Caller holds the lock
        now = self._clock()
        interaction = Interaction(
            id=new_id(),
            timestamp=now,
            suggestion_type=suggestion_type,
            suggestion_text=suggestion_text,
            user_response=user_response,
            context=context,
            target_entity_id=target_entity_id,
            user_correction=user_correction,
            hypothesis_id=hypothesis_id,
        )
        pruned = self.log.append(interaction)
        self._sync.mark(INTERACTIONS, interaction)
        for old in pruned:
            self._sync.mark_deleted(INTERACTIONS, old.id)
        metrics.counter("interactions_logged")
        logger.debug(
            "interaction_logged",
            interaction_id=interaction.id,
            suggestion_type=interaction.suggestion_type.value,
            response=interaction.user_response.value,
        )

        if interaction.is_override:
            self.hypotheses.consider(interaction, now)

        accepted = interaction.user_response == UserResponse.ACCEPTED
        if hypothesis_id:
            self.hypotheses.record_test(hypothesis_id, accepted, now)

        for pattern in self.patterns.for_suggestion_type(interaction.suggestion_type):
            self.patterns.check_decay(pattern.id, not accepted, now)

    # -- decisions ---------------------------------------------------------

    def get_pattern_modifications(
        self,
        context: InteractionContext,
        suggestion_type: Optional[SuggestionType | str] = None,
    ) -> list[PatternAction]:
        """Actions the UI should take before presenting a suggestion in this context."""
        with self._lock:
            kind = SuggestionType(suggestion_type) if suggestion_type is not None else None
            actions = self.patterns.apply(context, self._clock(), kind)
        self._sync.flush()
        return actions

    def should_skip_suggestion(
        self, suggestion_type: SuggestionType | str, context: InteractionContext
    ) -> bool:
        actions = self.get_pattern_modifications(context, suggestion_type)
        return any(a.type == ActionType.SKIP_SUGGESTION for a in actions)

    def is_testing_hypothesis(
        self,
        suggestion_type: SuggestionType | str,
        context: Optional[InteractionContext] = None,
    ) -> Optional[Hypothesis]:
        with self._lock:
            found = self.hypotheses.find_active_for(SuggestionType(suggestion_type), context)
            return copy.deepcopy(found)

    # -- lifecycle ---------------------------------------------------------

    def remove_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            removed = self.patterns.remove(pattern_id)
        self._sync.flush()
        return removed

    def dismiss_notification(self, notification_id: str) -> bool:
        with self._lock:
            dismissed = self.notifications.dismiss(notification_id) is not None
        self._sync.flush()
        return dismissed

    def clear_notifications(self) -> int:
        with self._lock:
            removed = self.notifications.clear()
        self._sync.flush()
        return len(removed)

    def prune_notifications(self) -> int:
        with self._lock:
            removed = self.notifications.prune_dismissed()
        self._sync.flush()
        return len(removed)

    def notify_auto_action(self, message: str, pattern_id: Optional[str] = None) -> Optional[Notification]:
        """Tell the user about an action taken on their behalf, if enabled."""
        if not self.config.notify_on_auto_action:
            return None
        with self._lock:
            notification = self.notifications.add(
                NotificationType.AUTO_ACTION, message, self._clock(), pattern_id=pattern_id
            )
            result = copy.deepcopy(notification)
        self._sync.flush()
        return result

    # -- reads -------------------------------------------------------------

    def snapshot(self) -> LearningSnapshot:
        with self._lock:
            return LearningSnapshot(
                taken_at=self._clock(),
                interactions=tuple(self.log.entries()),
                hypotheses=tuple(copy.deepcopy(self.hypotheses.all())),
                patterns=tuple(copy.deepcopy(self.patterns.all())),
                notifications=tuple(copy.deepcopy(self.notifications.all())),
                active_pattern_threshold=self.config.active_pattern_threshold,
            )

    def transparency(self) -> TransparencyView:
        return TransparencyView(self.snapshot())

    def get_active_hypotheses(self) -> list[Hypothesis]:
        return self.transparency().active_hypotheses()

    def get_confirmed_patterns(self) -> list[Pattern]:
        return self.transparency().confirmed_patterns()

    def get_user_learnings(self) -> list[str]:
        return self.transparency().user_learnings()

    def get_recent_interactions(self, limit: int = 10) -> list[Interaction]:
        return self.transparency().recent_interactions(limit)

    def get_pending_notifications(self, newest_first: bool = True) -> list[Notification]:
        return self.transparency().pending_notifications(newest_first)

    def get_stats(self) -> dict:
        return self.transparency().stats()

    # -- persistence -------------------------------------------------------

    def sync(self) -> bool:
        """Write all pending changes, retrying with backoff.

        Mutations keep running while this waits between attempts.
        """
        return self._sync.sync()

    def load(self) -> dict:
        """Replace in-memory state with what the repository holds. Returns counts."""
        with self._lock:
            interactions = _decode(self.repository.all(INTERACTIONS), Interaction.from_dict)
            hypotheses = _decode(self.repository.all("hypotheses"), Hypothesis.from_dict)
            patterns = _decode(self.repository.all("patterns"), Pattern.from_dict)
            notifications = _decode(self.repository.all("notifications"), Notification.from_dict)

            interactions.sort(key=lambda i: i.timestamp)
            self.log.replace_all(interactions[-self.config.load_interaction_limit :])
            self.hypotheses.replace_all(hypotheses)
            self.patterns.replace_all(patterns)
            self.notifications.replace_all([n for n in notifications if not n.dismissed])

            counts = {
                "interactions": len(self.log),
                "hypotheses": len(hypotheses),
                "patterns": len(patterns),
                "notifications": len(self.notifications),
            }
            logger.info("learning_state_loaded", **counts)
            return counts


def _decode(records: list[dict], parse: Callable[[dict], object]) -> list:
    decoded = []
    for record in records:
        try:
            decoded.append(parse(record))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("learning_record_skipped", record_id=record.get("id"), error=str(e))
    return decoded
