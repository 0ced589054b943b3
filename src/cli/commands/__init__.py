"""CLI command modules."""

from .learning import learn

__all__ = [
    "learn",
]
