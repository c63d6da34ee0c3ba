"""
Typer CLI for the personalization engine.

Commands:
    personalization gates               - List gate definitions
    personalization validate            - Validate settings and gate definitions
    personalization simulate EVENTS     - Replay a JSON-lines event file and report
    personalization db init             - Initialize persistence tables
    personalization serve               - Run the HTTP API

Usage:
    personalization --help
    personalization gates --file gates.json
    personalization simulate events.jsonl --catalog catalog.json --user u1
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from personalization.analytics import InMemoryAnalyticsSink
from personalization.core.clock import FixedClock
from personalization.core.exceptions import ConfigurationError
from personalization.engine import PersonalizationEngine
from personalization.gating.definitions import load_gate_catalog
from personalization.models import Accepted, InteractionEvent, RecommendationContext
from personalization.repositories.memory import InMemoryProfileStore, load_catalog, load_profiles
from personalization.scorer import validate_weights

app = typer.Typer(
    help="personalization: interaction ledger -> skill & journey -> recommendations and gating",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Personalization & gating engine CLI."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


# ========================================
# GATE COMMANDS
# ========================================


@app.command("gates")
def list_gates(
    file: Path | None = typer.Option(None, "--file", "-f", help="Gate definitions JSON (defaults to built-ins)"),
) -> None:
    """List gate definitions and their conditions."""
    try:
        catalog = load_gate_catalog(file or get_settings().gates_file)
    except ConfigurationError as e:
        rprint(f"[red]Invalid gate definitions:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"Content Gates ({len(catalog)})", show_header=True)
    table.add_column("Gate", style="cyan")
    table.add_column("Category")
    table.add_column("Skill", style="yellow")
    table.add_column("Sessions", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Tier")
    table.add_column("Depends on", style="dim")
    table.add_column("Method", style="green")

    for gate in catalog:
        conditions = gate.conditions
        ages = conditions.age_restrictions
        age = f"{ages.min}+" if ages.max is None else f"{ages.min}-{ages.max}"
        table.add_row(
            gate.id,
            gate.category,
            conditions.skill_level.value,
            str(conditions.experience_threshold),
            age if ages.min or ages.max is not None else "-",
            conditions.subscription_tier.value if conditions.subscription_tier else "-",
            ", ".join(conditions.feature_dependencies) or "-",
            gate.introduction.method.value if gate.introduction else "journey default",
        )

    console.print(table)


@app.command("validate")
def validate(
    gates_file: Path | None = typer.Option(None, "--gates-file", help="Gate definitions JSON to validate"),
) -> None:
    """
    Validate configuration before deployment.

    Checks factor weights and gate definitions (duplicates, unknown or
    cyclic dependencies, inverted ranges). Exits non-zero on any error.
    """
    settings = get_settings()
    errors = 0

    try:
        validate_weights(settings.get_factor_weights())
        rprint("[green]OK[/green]  factor weights sum to 1.0")
    except ConfigurationError as e:
        rprint(f"[red]ERR[/red] {e}")
        errors += 1

    try:
        catalog = load_gate_catalog(gates_file or settings.gates_file)
        rprint(f"[green]OK[/green]  {len(catalog)} gate definitions")
    except ConfigurationError as e:
        rprint(f"[red]ERR[/red] {e}")
        errors += 1

    if errors:
        raise typer.Exit(code=1)


# ========================================
# SIMULATION
# ========================================


def _read_events(path: Path) -> list[InteractionEvent]:
    events = []
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            events.append(InteractionEvent.from_dict(json.loads(line)))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            rprint(f"[yellow]Skipping line {number}:[/yellow] {e}")
    return events


@app.command("simulate")
def simulate(
    events_file: Path = typer.Argument(..., exists=True, readable=True, help="JSON-lines interaction events"),
    catalog_file: Path = typer.Option(..., "--catalog", "-c", exists=True, help="Catalog items JSON"),
    profiles_file: Path | None = typer.Option(None, "--profiles", "-p", exists=True, help="User profiles JSON"),
    user: str | None = typer.Option(None, "--user", "-u", help="Report on one user (default: all users)"),
    count: int = typer.Option(5, "--count", "-n", help="Recommendations per user"),
    at: str | None = typer.Option(None, "--at", help="Evaluation time (ISO 8601, default: last event time)"),
) -> None:
    """
    Replay interaction events and print what the engine derives.

    Examples:
        personalization simulate events.jsonl --catalog catalog.json
        personalization simulate events.jsonl -c catalog.json -u user-1 -n 10
    """
    events = _read_events(events_file)
    if not events:
        rprint("[yellow]No events to replay[/yellow]")
        raise typer.Exit(code=1)

    clock = FixedClock(min(event.timestamp for event in events))
    sink = InMemoryAnalyticsSink()
    try:
        engine = PersonalizationEngine(
            load_profiles(profiles_file) if profiles_file else InMemoryProfileStore(),
            load_catalog(catalog_file),
            gates=load_gate_catalog(get_settings().gates_file),
            analytics=sink,
            clock=clock,
        )
    except ConfigurationError as e:
        rprint(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)

    rejected = 0
    for event in sorted(events, key=lambda e: e.timestamp):
        clock.set(event.timestamp)
        if not isinstance(engine.record_interaction(event.user_id, event), Accepted):
            rejected += 1
    clock.set(datetime.fromisoformat(at) if at else max(event.timestamp for event in events))

    rprint(f"\n[bold cyan]Replayed {len(events)} events[/bold cyan] ({rejected} rejected)")

    users = [user] if user else sorted({event.user_id for event in events})
    for user_id in users:
        _report_user(engine, user_id, count)


def _report_user(engine: PersonalizationEngine, user_id: str, count: int) -> None:
    pattern = engine.get_usage_pattern(user_id)
    assessment = engine.assess_skill(user_id)
    plan = engine.get_engagement_plan(user_id)

    rprint(f"\n[bold]User {user_id}[/bold]")
    rprint(
        f"  Events: {pattern.total_events}  Sessions: {assessment.sessions}  "
        f"Trend: {pattern.engagement_trend.value}  Return frequency: {pattern.return_frequency:.2f}/day"
    )
    rprint(
        f"  Skill: [yellow]{assessment.level.value}[/yellow] ({assessment.confidence:.1f})  "
        f"Journey: [cyan]{assessment.journey_stage.value}[/cyan]"
    )
    rprint(
        f"  Engagement score: {plan.engagement_score:.1f}  Retention: {plan.retention_prediction:.2f}  "
        f"Churn risk: {plan.churn_risk.value}"
    )

    gates = Table(title="Gates", show_header=True)
    gates.add_column("Gate", style="cyan")
    gates.add_column("Status")
    gates.add_column("Eligible")
    gates.add_column("Reason", style="dim")
    for state in engine.gate_states(user_id):
        result = engine.evaluate_gate(user_id, state.gate_id)
        gates.add_row(
            state.gate_id,
            state.status.value,
            "[green]yes[/green]" if result.eligible else "[red]no[/red]",
            result.reason.value if result.reason else "-",
        )
    console.print(gates)

    recs = Table(title="Recommendations", show_header=True)
    recs.add_column("#", justify="right")
    recs.add_column("Item", style="cyan")
    recs.add_column("Score", justify="right", style="green")
    recs.add_column("Reasons", style="dim")
    for rank, rec in enumerate(engine.get_recommendations(user_id, RecommendationContext(count=count)), start=1):
        name = f"{rec.item.name} [dim](fallback)[/dim]" if rec.is_fallback else rec.item.name
        recs.add_row(str(rank), name, f"{rec.score:.3f}", "; ".join(rec.reasons))
    console.print(recs)

    for strategy in plan.engagement_opportunities:
        rprint(f"  [magenta]{strategy.strategy}[/magenta] ({strategy.channel}, {strategy.priority}): {strategy.message}")
    for risk in plan.abandonment_risks:
        rprint(f"  [red]{risk.recovery_method}[/red] ({risk.abandonment_point}): {risk.message}")


# ========================================
# DATABASE & SERVER
# ========================================

db_app = typer.Typer(help="Persistence adapter tables")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Create gate state, usage pattern and event archive tables."""
    from personalization.db.database import init_db

    init_db()
    rprint("[green]Database tables initialized[/green]")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host (default from settings)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default from settings)"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "personalization.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
