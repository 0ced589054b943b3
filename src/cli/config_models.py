"""Pydantic configuration models for Chronos."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class SimilarityWeightsConfig(BaseModel):
    """Per-dimension weights for context similarity scoring."""

    time_of_day: float = 0.3
    day_type: float = 0.2
    current_load: float = 0.2
    energy_indicator: float = 0.3

    @model_validator(mode="after")
    def validate_weights(self):
        """Ensure weights are non-negative and sum to 1.0."""
        values = self.model_dump()
        negative = [k for k, v in values.items() if v < 0]
        if negative:
            raise ValueError(f"Similarity weights must be non-negative: {negative}")
        total = sum(values.values())
        if not 0.99 <= total <= 1.01:
            raise ValueError(f"Similarity weights must sum to 1.0, got {total}")
        return self


class LearningConfig(BaseModel):
    """Thresholds for hypothesis generation, testing, and pattern confidence."""

    # Hypothesis generation
    hypothesis_threshold: int = 3
    observation_window_days: int = 14
    max_active_hypotheses: int = 5
    similarity_threshold: float = 0.6
    common_context_ratio: float = 0.7

    # Hypothesis testing
    confirmation_required: int = 2
    max_tests_before_stale: int = 10

    # Pattern management
    initial_confidence: float = 0.7
    confidence_boost_per_use: float = 0.05
    confidence_decay_per_override: float = 0.1
    decay_threshold: int = 5
    active_pattern_threshold: float = 0.3

    # Interaction log
    max_interactions: int = 1000
    load_interaction_limit: int = 500

    # Surfacing
    notify_on_new_pattern: bool = True
    notify_on_auto_action: bool = True
    ask_before_removing_pattern: bool = True

    similarity_weights: SimilarityWeightsConfig = Field(default_factory=SimilarityWeightsConfig)

    @field_validator(
        "hypothesis_threshold",
        "observation_window_days",
        "max_active_hypotheses",
        "confirmation_required",
        "max_tests_before_stale",
        "decay_threshold",
        "max_interactions",
        "load_interaction_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator(
        "similarity_threshold",
        "common_context_ratio",
        "initial_confidence",
        "confidence_boost_per_use",
        "confidence_decay_per_override",
        "active_pattern_threshold",
    )
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"must be 0-1, got {v}")
        return v


class PathsConfig(BaseModel):
    """File paths configuration."""

    db_path: Path = Path("~/.chronos/learning.db")
    log_file: Optional[Path] = None

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.db_path = self.db_path.expanduser()
        if self.log_file:
            self.log_file = self.log_file.expanduser()
        return self


class RetryConfig(BaseModel):
    """Retry/backoff configuration for persistence flushes."""

    max_attempts: int = 3
    min_wait: float = 0.5
    max_wait: float = 5.0


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class ChronosConfig(BaseModel):
    """Main configuration model."""

    learning: LearningConfig = Field(default_factory=LearningConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "ChronosConfig":
        """Create config from dict, accepting string paths."""
        if "paths" in data:
            for key in ["db_path", "log_file"]:
                if isinstance(data["paths"].get(key), str):
                    data["paths"][key] = Path(data["paths"][key])
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        """Convert to plain dict."""
        return self.model_dump(mode="python")
