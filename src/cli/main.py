"""CLI entry point for chronos."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import learn
from cli.config import load_config_model, setup_logging
from cli.utils import console
from observability import log_run_summary


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ./config.yaml or ~/.chronos/config.yaml)",
)
@click.pass_context
def cli(ctx, verbose: bool, config_path: Path | None):
    """Chronos - calendar assistant that learns from your overrides."""
    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    setup_logging(config, verbose=verbose)
    ctx.obj = {"config_path": config_path, "verbose": verbose}
    if verbose:
        ctx.call_on_close(log_run_summary)


cli.add_command(learn)


if __name__ == "__main__":
    cli()
