"""Configuration loading and management."""

from pathlib import Path
from typing import Optional

import yaml

from .config_models import ChronosConfig


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / "config.yaml",
        Path.home() / ".chronos" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None) -> ChronosConfig:
    """Load configuration as Pydantic model with validation."""
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")

    if not isinstance(base_config, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(base_config).__name__}")

    try:
        return ChronosConfig.from_dict(base_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")


def setup_logging(config: ChronosConfig, verbose: bool = False) -> None:
    """Configure structlog from the logging section."""
    from .logging_config import setup_logging as _setup

    level = "DEBUG" if verbose else config.logging.level
    _setup(json_mode=config.logging.json_mode, level=level, log_file=config.paths.log_file)
