"""Append-only rolling log of suggestions and responses."""

from collections.abc import Mapping
from datetime import datetime, timedelta

import structlog

from shared_types import SuggestionType

from .models import Interaction, InteractionContext
from .similarity import context_similarity

logger = structlog.get_logger()


class InteractionLog:
    """In-memory interaction history capped at `max_size` entries."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: list[Interaction] = []

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, interaction: Interaction) -> list[Interaction]:
        """Append and enforce the retention cap. Returns pruned entries (oldest first)."""
        self._entries.append(interaction)
        overflow = len(self._entries) - self.max_size
        if overflow <= 0:
            return []
        pruned = self._entries[:overflow]
        del self._entries[:overflow]
        logger.debug("interactions_pruned", count=len(pruned))
        return pruned

    def replace_all(self, interactions: list[Interaction]) -> None:
        """Load history, oldest first, keeping only the newest `max_size`."""
        ordered = sorted(interactions, key=lambda i: i.timestamp)
        self._entries = ordered[-self.max_size :]

    def entries(self) -> list[Interaction]:
        return list(self._entries)

    def recent(self, limit: int = 10) -> list[Interaction]:
        """Most recent interactions, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._entries[-limit:]))

    def similar_overrides(
        self,
        suggestion_type: SuggestionType,
        context: InteractionContext,
        now: datetime,
        window_days: int = 14,
        threshold: float = 0.6,
        weights: Mapping[str, float] | None = None,
    ) -> list[Interaction]:
        """Rejected/modified interactions of a type, within the window, similar to context."""
        cutoff = now - timedelta(days=window_days)
        return [
            i
            for i in self._entries
            if i.timestamp > cutoff
            and i.suggestion_type == suggestion_type
            and i.is_override
            and context_similarity(i.context, context, weights) > threshold
        ]
