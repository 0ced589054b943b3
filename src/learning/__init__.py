"""Adaptive learning — turns repeated overrides into tested, decaying behavior patterns."""

from .context import build_context, day_type_for, time_of_day_for
from .engine import LearningEngine
from .models import (
    ContextMatchers,
    Hypothesis,
    Interaction,
    InteractionContext,
    Notification,
    Pattern,
    PatternAction,
    PatternTrigger,
    TriggerCondition,
)
from .repository import InMemoryRepository, LearningRepository, SQLiteRepository
from .similarity import context_similarity
from .transparency import LearningSnapshot, TransparencyView

__all__ = [
    "ContextMatchers",
    "Hypothesis",
    "InMemoryRepository",
    "Interaction",
    "InteractionContext",
    "LearningEngine",
    "LearningRepository",
    "LearningSnapshot",
    "Notification",
    "Pattern",
    "PatternAction",
    "PatternTrigger",
    "SQLiteRepository",
    "TransparencyView",
    "TriggerCondition",
    "build_context",
    "context_similarity",
    "day_type_for",
    "time_of_day_for",
]
