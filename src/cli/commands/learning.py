"""Learning CLI commands — what chronos has learned, what it is testing, and feedback."""

from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from cli.utils import components_from_context, finish
from shared_types import (
    CurrentLoad,
    EnergyIndicator,
    SuggestionType,
    TimeOfDay,
    UserResponse,
)

console = Console()

_STATUS_COLORS = {
    "testing": "yellow",
    "confirmed": "green",
    "rejected": "red",
    "stale": "dim",
}


def _choice(enum_cls) -> click.Choice:
    return click.Choice([e.value for e in enum_cls])


def context_options(f):
    """Options that override the context derived from the current time."""
    options = [
        click.option(
            "--at", "at", type=click.DateTime(), default=None,
            help="Moment to build the context for (default: now)",
        ),
        click.option("--time-of-day", type=_choice(TimeOfDay), default=None),
        click.option("--load", "current_load", type=_choice(CurrentLoad), default=None),
        click.option("--energy", "energy_indicator", type=_choice(EnergyIndicator), default=None),
        click.option("--previous-task", "previous_task_type", default=None),
        click.option(
            "--minutes-since", "minutes_since_previous_task", type=click.FloatRange(min=0),
            default=None, help="Minutes since the previous task ended",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _build_context(engine, at, **options):
    from learning import build_context

    overrides = {k: v for k, v in options.items() if v is not None}
    snapshot = engine.snapshot()
    return build_context(at or datetime.now(), snapshot.interactions, **overrides)


def _short(ts: datetime | None) -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else "-"


@click.group()
def learn():
    """Adaptive learning — overrides, hypotheses under test, learned patterns."""
    pass


@learn.command("status")
def learn_status():
    """Summary counts for everything chronos has learned."""
    c = components_from_context()
    stats = c["engine"].get_stats()

    console.print(f"Interactions: {stats['interactions']} ({stats['overrides']} overrides)")
    console.print(f"Testing hypotheses: {stats['active_hypotheses']}")
    console.print(f"Confirmed patterns: {stats['confirmed_patterns']}")
    console.print(f"Decayed patterns: {stats['decayed_patterns']}")
    console.print(f"Pattern applications: {stats['total_applications']}")
    console.print(f"Pending notifications: {stats['pending_notifications']}")

    resolved = {k: v for k, v in stats["hypotheses_by_status"].items() if v}
    if resolved:
        console.print("\nHypotheses by status:")
        for status, count in resolved.items():
            color = _STATUS_COLORS.get(status, "white")
            console.print(f"  [{color}]{status}[/]: {count}")


@learn.command("learnings")
def learn_learnings():
    """Plain-language list of what chronos has learned about you."""
    c = components_from_context()
    learnings = c["engine"].get_user_learnings()

    if not learnings:
        console.print("[yellow]Nothing learned yet.[/]")
        return

    console.print("[bold]What I've learned about you:[/]")
    for text in learnings:
        console.print(f"  [green]•[/] {text}")


@learn.command("hypotheses")
def learn_hypotheses():
    """Hypotheses currently being tested."""
    c = components_from_context()
    hypotheses = c["engine"].get_active_hypotheses()

    if not hypotheses:
        console.print("[yellow]No hypotheses under test.[/]")
        return

    table = Table(title="Testing Hypotheses", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Hypothesis")
    table.add_column("When", style="dim")
    table.add_column("Tests", justify="right")
    table.add_column("+/-", justify="right")

    for h in hypotheses:
        table.add_row(
            h.id,
            h.trigger_condition.suggestion_type.value,
            h.hypothesis,
            h.trigger_condition.context_matchers.describe() or "any",
            str(h.tests_run),
            f"{h.confirmations}/{h.rejections}",
        )
    console.print(table)


@learn.command("patterns")
@click.option("--all", "show_all", is_flag=True, help="Include decayed patterns")
def learn_patterns(show_all: bool):
    """Confirmed patterns with confidence and usage."""
    c = components_from_context()
    view = c["engine"].transparency()
    patterns = view.confirmed_patterns()
    if show_all:
        patterns += view.decayed_patterns()

    if not patterns:
        console.print("[yellow]No confirmed patterns.[/]")
        return

    table = Table(title="Learned Patterns", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Description")
    table.add_column("Action", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Applied", justify="right")
    table.add_column("Overrides", justify="right")
    table.add_column("Last used", style="dim")

    threshold = c["engine"].config.active_pattern_threshold
    for p in patterns:
        color = "green" if p.confidence > threshold else "red"
        table.add_row(
            p.id,
            p.description,
            p.action.type.value,
            f"[{color}]{p.confidence:.0%}[/]",
            str(p.application_count),
            str(p.overrides_since_confirm),
            _short(p.last_applied),
        )
    console.print(table)


@learn.command("history")
@click.option("-n", "--limit", default=10, help="Max interactions to show")
def learn_history(limit: int):
    """Most recent suggestion interactions, newest first."""
    c = components_from_context()
    interactions = c["engine"].get_recent_interactions(limit)

    if not interactions:
        console.print("[yellow]No interactions logged.[/]")
        return

    table = Table(show_header=True)
    table.add_column("When", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Response")
    table.add_column("Suggestion")
    table.add_column("Context", style="dim")

    for i in interactions:
        response = i.user_response.value
        if i.is_override:
            response = f"[red]{response}[/]"
        ctx = i.context
        table.add_row(
            _short(i.timestamp),
            i.suggestion_type.value,
            response,
            i.suggestion_text[:50],
            f"{ctx.time_of_day.value}/{ctx.day_type.value}/{ctx.current_load.value}",
        )
    console.print(table)


@learn.command("notifications")
def learn_notifications():
    """Pending learning notifications, newest first."""
    c = components_from_context()
    notifications = c["engine"].get_pending_notifications()

    if not notifications:
        console.print("[dim]No pending notifications.[/]")
        return

    for n in notifications:
        console.print(f"[dim]{n.id}[/] [cyan]{n.type.value}[/] {n.message}")


@learn.command("dismiss")
@click.argument("notification_id")
def learn_dismiss(notification_id: str):
    """Dismiss a notification."""
    c = components_from_context()
    engine = c["engine"]

    if engine.dismiss_notification(notification_id):
        console.print(f"[green]Dismissed:[/] {notification_id}")
    else:
        console.print(f"[yellow]Not found:[/] {notification_id}")
    finish(engine)


@learn.command("forget")
@click.argument("pattern_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def learn_forget(pattern_id: str, yes: bool):
    """Remove a learned pattern."""
    c = components_from_context()
    engine = c["engine"]

    pattern = next((p for p in engine.snapshot().patterns if p.id == pattern_id), None)
    if pattern is None:
        console.print(f"[red]Not found:[/] {pattern_id}")
        return

    if not yes and not click.confirm(f"Forget '{pattern.description}'?"):
        return

    engine.remove_pattern(pattern_id)
    console.print(f"[green]Forgot:[/] {pattern.description}")
    finish(engine)


@learn.command("log")
@click.argument("suggestion_type", type=_choice(SuggestionType))
@click.argument("response", type=_choice(UserResponse))
@click.option("--text", default="", help="Suggestion text as shown")
@click.option("--correction", default=None, help="What you did instead")
@click.option("--target", "target_entity_id", default=None, help="Affected task or event id")
@click.option(
    "--track/--no-track", default=True,
    help="Count this as a test of a matching hypothesis",
)
@context_options
def learn_log(
    suggestion_type: str,
    response: str,
    text: str,
    correction: str | None,
    target_entity_id: str | None,
    track: bool,
    at: datetime | None,
    **context_opts,
):
    """Record how you responded to a suggestion."""
    c = components_from_context()
    engine = c["engine"]
    context = _build_context(engine, at, **context_opts)
    before = {n.id for n in engine.get_pending_notifications()}

    record = engine.track_suggestion if track else engine.log_interaction
    record(
        suggestion_type,
        text or suggestion_type,
        response,
        context,
        target_entity_id=target_entity_id,
        user_correction=correction,
    )

    console.print(f"[green]Logged:[/] {suggestion_type} → {response}")
    for n in engine.get_pending_notifications():
        if n.id not in before:
            console.print(f"  [cyan]{n.type.value}[/] {n.message}")
    finish(engine)


@learn.command("check")
@click.option("--type", "suggestion_type", type=_choice(SuggestionType), default=None,
              help="Only patterns learned for this suggestion type")
@context_options
def learn_check(suggestion_type: str | None, at: datetime | None, **context_opts):
    """Show what learned patterns would change in a context."""
    c = components_from_context()
    engine = c["engine"]
    context = _build_context(engine, at, **context_opts)
    actions = engine.get_pattern_modifications(context, suggestion_type)

    if not actions:
        console.print("[dim]No learned patterns apply.[/]")
        finish(engine)
        return

    table = Table(title="Pattern Modifications", show_header=True)
    table.add_column("Action", style="cyan")
    table.add_column("Params")
    for action in actions:
        params = ", ".join(f"{k}={v}" for k, v in action.params.items()) or "-"
        table.add_row(action.type.value, params)
    console.print(table)
    finish(engine)
