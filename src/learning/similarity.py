"""Weighted context similarity used to group comparable overrides."""

from collections.abc import Mapping

from .models import InteractionContext

# Scored dimensions and their default weights (sum to 1.0)
DEFAULT_WEIGHTS: dict[str, float] = {
    "time_of_day": 0.3,
    "day_type": 0.2,
    "current_load": 0.2,
    "energy_indicator": 0.3,
}


def context_similarity(
    a: InteractionContext,
    b: InteractionContext,
    weights: Mapping[str, float] | None = None,
) -> float:
    """Score two snapshots in [0, 1].

    A dimension contributes its full weight only on an exact match of two
    present values; a value missing on either side counts as a mismatch.
    Never raises for partial or malformed snapshots.
    """
    weights = weights or DEFAULT_WEIGHTS
    score = 0.0
    for dimension, weight in weights.items():
        left = getattr(a, dimension, None)
        right = getattr(b, dimension, None)
        if left is not None and right is not None and left == right:
            score += weight
    return min(1.0, max(0.0, score))
