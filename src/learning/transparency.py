"""Read-only "what have you learned about me" projections over a consistent snapshot."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from shared_types import HypothesisStatus

from .models import Hypothesis, Interaction, Notification, Pattern


@dataclass(frozen=True)
class LearningSnapshot:
    """Deep copy of engine state taken under the engine lock."""

    taken_at: datetime
    interactions: tuple[Interaction, ...]
    hypotheses: tuple[Hypothesis, ...]
    patterns: tuple[Pattern, ...]
    notifications: tuple[Notification, ...]
    active_pattern_threshold: float = 0.3


class TransparencyView:
    def __init__(self, snapshot: LearningSnapshot):
        self.snapshot = snapshot

    def _is_trusted(self, pattern: Pattern) -> bool:
        return pattern.confidence > self.snapshot.active_pattern_threshold

    def active_hypotheses(self) -> list[Hypothesis]:
        return [h for h in self.snapshot.hypotheses if h.status == HypothesisStatus.TESTING]

    def confirmed_patterns(self) -> list[Pattern]:
        """Trusted patterns, most confident first."""
        trusted = [p for p in self.snapshot.patterns if self._is_trusted(p)]
        return sorted(trusted, key=lambda p: p.confidence, reverse=True)

    def decayed_patterns(self) -> list[Pattern]:
        """Patterns at or below the trust threshold: kept for audit, never applied."""
        return [p for p in self.snapshot.patterns if not self._is_trusted(p)]

    def user_learnings(self) -> list[str]:
        return [p.description for p in self.confirmed_patterns()]

    def recent_interactions(self, limit: int = 10) -> list[Interaction]:
        if limit <= 0:
            return []
        return list(reversed(self.snapshot.interactions[-limit:]))

    def pending_notifications(self, newest_first: bool = True) -> list[Notification]:
        items = [n for n in self.snapshot.notifications if not n.dismissed]
        return list(reversed(items)) if newest_first else items

    def stats(self) -> dict:
        by_status = Counter(h.status.value for h in self.snapshot.hypotheses)
        confirmed = self.confirmed_patterns()
        return {
            "interactions": len(self.snapshot.interactions),
            "overrides": sum(1 for i in self.snapshot.interactions if i.is_override),
            "active_hypotheses": by_status.get(HypothesisStatus.TESTING.value, 0),
            "hypotheses_by_status": {s.value: by_status.get(s.value, 0) for s in HypothesisStatus},
            "confirmed_patterns": len(confirmed),
            "decayed_patterns": len(self.snapshot.patterns) - len(confirmed),
            "total_applications": sum(p.application_count for p in self.snapshot.patterns),
            "pending_notifications": len(self.pending_notifications()),
        }
