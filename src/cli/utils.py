"""Shared CLI utilities."""

import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_path: Optional[Path] = None):
    """Load config and a LearningEngine hydrated from the configured database.

    Args:
        config_path: Explicit config file; falls back to the standard locations.
    """
    from cli.config import load_config_model
    from learning import LearningEngine, SQLiteRepository

    try:
        config_model = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    repository = SQLiteRepository(config_model.paths.db_path)
    engine = LearningEngine(
        config=config_model.learning,
        repository=repository,
        retry_config=config_model.retry,
    )
    engine.load()

    return {
        "config_model": config_model,
        "repository": repository,
        "engine": engine,
    }


def components_from_context() -> dict:
    """get_components() for the config path given to the root command."""
    ctx = click.get_current_context()
    obj = ctx.find_root().obj or {}
    return get_components(obj.get("config_path"))


def finish(engine) -> None:
    """Push any writes that the per-operation flush could not complete."""
    if engine.pending_writes and not engine.sync():
        console.print(
            f"[yellow]Warning:[/] {engine.pending_writes} change(s) could not be saved"
        )
