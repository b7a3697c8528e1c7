"""
Typer CLI for the learnloop analytics service.

Commands:
    learnloop serve                      - Run the REST API (with the recompute worker)
    learnloop ingest events.jsonl        - Ingest telemetry events from a JSON-lines file
    learnloop users                      - List learners with a profile
    learnloop profile USER               - Show a learner's skills and learning style
    learnloop patterns USER              - Show detected patterns
    learnloop recompute [USER]           - Recompute one user, or everyone who is due
    learnloop focus USER                 - Show the current focus areas
    learnloop recommend USER             - Show ranked recommendations
    learnloop bundle USER --minutes 20   - Build a time-boxed bundle
    learnloop outcome REC_ID --type success --accuracy 85
    learnloop effectiveness USER         - Completion and success rates

Usage:
    learnloop --help
    learnloop --db sqlite:///./demo.db ingest samples/events.jsonl
    learnloop recommend learner-1 --energy low --minutes 10
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from src.core.errors import LearnLoopError, ValidationError
from src.core.models import (
    Energy,
    Event,
    Outcome,
    OutcomeFeedback,
    OutcomeMetric,
    OutcomeType,
    new_id,
)
from src.engine.service import LearningAnalyticsService

app = typer.Typer(
    help="learnloop CLI: telemetry -> profiles -> patterns -> recommendations",
    no_args_is_help=True,
)

console = Console()

PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "yellow",
    "medium": "cyan",
    "low": "dim",
}


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    The service is built lazily so `--help` never touches the database.
    """

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        if database_url:
            settings = settings.model_copy(update={"database_url": database_url})
        self.settings: Settings = settings
        self._service: LearningAnalyticsService | None = None

    @property
    def service(self) -> LearningAnalyticsService:
        if self._service is None:
            self._service = LearningAnalyticsService.from_settings(self.settings)
        return self._service

    def close(self) -> None:
        if self._service is not None:
            asyncio.run(self._service.aclose())
            self._service = None


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str | None = typer.Option(
        None, "--db", help="SQLAlchemy URL (default: LEARNLOOP_DATABASE_URL)"
    ),
) -> None:
    """Adaptive learning analytics and recommendation engine."""
    cli_ctx = CLIContext(database_url=database_url)
    ctx.obj = cli_ctx
    ctx.call_on_close(cli_ctx.close)


def _service(ctx: typer.Context) -> LearningAnalyticsService:
    return ctx.obj.service


def _fail(exc: LearnLoopError) -> None:
    rprint(f"[red]✗[/red] {exc}")
    raise typer.Exit(code=1)


# ========================================
# SERVER
# ========================================


@app.command("serve")
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Bind address (default: api_host)"),
    port: int | None = typer.Option(None, "--port", help="Port (default: api_port)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    settings: Settings = ctx.obj.settings
    uvicorn.run(
        "src.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ========================================
# INGESTION
# ========================================


@app.command("ingest")
def ingest(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines file of events"),
) -> None:
    """
    Ingest telemetry events from a JSON-lines file.

    Events are sorted by timestamp before they are applied, so a file
    exported out of order still ingests cleanly. Malformed lines are
    reported and skipped.
    """
    events: list[Event] = []
    malformed: dict[str, str] = {}

    with path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(Event.from_dict(json.loads(line)))
            except json.JSONDecodeError as e:
                malformed[f"line {line_no}"] = f"invalid JSON: {e.msg}"
            except ValidationError as e:
                malformed[f"line {line_no}"] = str(e)

    try:
        result = _service(ctx).ingest_batch(events)
    except LearnLoopError as e:
        _fail(e)

    rejected = {**malformed, **result.rejected}

    table = Table(title=f"Ingest: {path.name}", show_header=True)
    table.add_column("Result", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Applied", f"[green]{len(result.applied)}[/green]")
    table.add_row("Duplicates", f"[dim]{len(result.duplicates)}[/dim]")
    table.add_row("Rejected", f"[red]{len(rejected)}[/red]" if rejected else "-")
    console.print(table)

    for source, reason in rejected.items():
        rprint(f"  [red]✗[/red] {source}: {reason}")

    logger.info(f"Ingested {len(result.applied)} events from {path}")


# ========================================
# QUERIES
# ========================================


@app.command("users")
def list_users(ctx: typer.Context) -> None:
    """List learners with a profile."""
    users = _service(ctx).list_users()
    if not users:
        rprint("[yellow]⚠[/yellow] No learners yet")
        return
    for user_id in users:
        rprint(f"  {user_id}")


@app.command("profile")
def show_profile(ctx: typer.Context, user_id: str = typer.Argument(...)) -> None:
    """Show a learner's skills, sessions and learning style."""
    try:
        profile = _service(ctx).get_profile(user_id)
    except LearnLoopError as e:
        _fail(e)

    rprint(f"\n[bold cyan]{profile.user_id}[/bold cyan]")
    rprint(f"  Sessions: {profile.session_count}  (avg {profile.average_session_minutes:.1f} min)")
    rprint(f"  Engagement: {profile.engagement_score:.0f}  trend: {profile.engagement_trend.value}")
    rprint(f"  Preferred modality: {profile.style.preferred_modality()}")

    table = Table(title="Skills", show_header=True)
    table.add_column("Skill", style="cyan")
    table.add_column("Mastery", justify="right")
    table.add_column("Level", justify="right")
    table.add_column("Practiced", justify="right")
    table.add_column("Rate/wk", justify="right")
    table.add_column("Last practice", style="dim")

    for skill in sorted(profile.skills.values(), key=lambda s: -s.mastery_pct):
        table.add_row(
            skill.skill,
            f"{skill.mastery_pct:.1f}%",
            str(skill.level),
            str(skill.sessions_practiced),
            f"{skill.improvement_rate:+.2f}",
            skill.last_practice.strftime("%Y-%m-%d %H:%M") if skill.last_practice else "-",
        )
    console.print(table)


@app.command("patterns")
def show_patterns(ctx: typer.Context, user_id: str = typer.Argument(...)) -> None:
    """Show patterns from the last recompute."""
    try:
        patterns = _service(ctx).get_patterns(user_id)
    except LearnLoopError as e:
        _fail(e)

    if not patterns:
        rprint("[yellow]⚠[/yellow] No patterns yet (run `learnloop recompute` first)")
        return

    table = Table(title=f"Patterns: {user_id}", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Description")
    table.add_column("Confidence", justify="right")
    table.add_column("Significance")
    table.add_column("Seen", justify="right")
    table.add_column("Trend", style="dim")

    for pattern in patterns:
        table.add_row(
            pattern.type.value,
            pattern.description,
            f"{pattern.confidence:.2f}",
            pattern.significance.value,
            str(pattern.frequency),
            pattern.trend.value,
        )
    console.print(table)


@app.command("recompute")
def recompute(
    ctx: typer.Context,
    user_id: str | None = typer.Argument(None, help="Learner to recompute (default: all due)"),
) -> None:
    """Run pattern detection, focus synthesis and recommendation refresh."""
    service = _service(ctx)

    if user_id:
        try:
            summary = asyncio.run(service.recompute_user(user_id))
        except LearnLoopError as e:
            _fail(e)
        rprint(
            f"[green]✓[/green] {summary.user_id}: {summary.patterns} patterns, "
            f"{summary.focus_areas} focus areas, {summary.active_recommendations} active recommendations"
        )
        if summary.insight_error:
            rprint(f"  [yellow]⚠[/yellow] Narrative insights unavailable: {summary.insight_error}")
        return

    report = asyncio.run(service.run_scheduled())
    if report.total == 0:
        rprint("[dim]No learners due for recompute[/dim]")
        return
    rprint(f"[green]✓[/green] Recomputed {len(report.succeeded)} learners")
    for failed_user, reason in report.failed.items():
        rprint(f"  [red]✗[/red] {failed_user}: {reason}")
    if report.failed:
        raise typer.Exit(code=1)


@app.command("focus")
def show_focus(ctx: typer.Context, user_id: str = typer.Argument(...)) -> None:
    """Show the focus areas from the latest synthesis run."""
    try:
        runs = _service(ctx).get_focus_history(user_id)
    except LearnLoopError as e:
        _fail(e)

    if not runs:
        rprint("[yellow]⚠[/yellow] No focus areas yet (run `learnloop recompute` first)")
        return

    run = runs[-1]
    table = Table(title=f"Focus areas ({run.created_at:%Y-%m-%d %H:%M})", show_header=True)
    table.add_column("Area", style="cyan")
    table.add_column("Priority")
    table.add_column("Confidence", justify="right")
    table.add_column("Source", style="dim")
    table.add_column("Rationale")

    for area in run.areas:
        style = PRIORITY_STYLES.get(area.priority.value, "")
        table.add_row(
            area.area,
            f"[{style}]{area.priority.value}[/{style}]" if style else area.priority.value,
            f"{area.confidence:.2f}",
            area.source.value,
            area.rationale,
        )
    console.print(table)
    if run.insight_error:
        rprint(f"[dim]Narrative insights unavailable: {run.insight_error}[/dim]")


@app.command("recommend")
def recommend(
    ctx: typer.Context,
    user_id: str = typer.Argument(...),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum recommendations"),
    energy: Energy | None = typer.Option(None, "--energy", help="Current energy level"),
    minutes: int | None = typer.Option(None, "--minutes", help="Time available now"),
    all_statuses: bool = typer.Option(False, "--all", help="Include completed/paused/superseded"),
) -> None:
    """Show ranked recommendations."""
    try:
        recommendations = _service(ctx).get_recommendations(
            user_id,
            limit=limit,
            energy=energy,
            available_minutes=minutes,
            include_inactive=all_statuses,
        )
    except LearnLoopError as e:
        _fail(e)

    if not recommendations:
        rprint("[yellow]⚠[/yellow] No recommendations")
        return

    table = Table(title=f"Recommendations: {user_id}", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Priority")
    table.add_column("Score", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Status")

    for rec in recommendations:
        style = PRIORITY_STYLES.get(rec.priority.value, "")
        table.add_row(
            rec.id,
            rec.title,
            f"[{style}]{rec.priority.value}[/{style}]" if style else rec.priority.value,
            f"{rec.score:.2f}",
            str(rec.timing.duration_minutes),
            rec.status.value,
        )
    console.print(table)


@app.command("bundle")
def bundle(
    ctx: typer.Context,
    user_id: str = typer.Argument(...),
    minutes: int = typer.Option(..., "--minutes", "-m", help="Time budget in minutes"),
    focus: str | None = typer.Option(None, "--focus", help="Focus area (default: top focus)"),
) -> None:
    """Build a time-boxed bundle of recommendations."""
    try:
        result = _service(ctx).get_bundle(user_id, focus, minutes)
    except LearnLoopError as e:
        _fail(e)

    rprint(f"\n[bold cyan]{result.name}[/bold cyan]")
    rprint(
        f"  {result.estimated_total_minutes}/{result.time_budget_minutes} min  "
        f"synergy {result.synergy_score:.2f}  coherence {result.pathway_coherence:.2f}"
    )
    if not result.recommendations:
        rprint("  [yellow]⚠[/yellow] Nothing fits in this time budget")
        return
    for rec in result.recommendations:
        rprint(f"  • {rec.title} [dim]({rec.timing.duration_minutes} min)[/dim]")


@app.command("outcome")
def record_outcome(
    ctx: typer.Context,
    recommendation_id: str = typer.Argument(...),
    outcome_type: OutcomeType = typer.Option(..., "--type", "-t", help="Outcome type"),
    accuracy: float | None = typer.Option(None, "--accuracy", help="Achieved accuracy (0-100)"),
    target: float = typer.Option(80.0, "--target", help="Target accuracy"),
    engagement: int | None = typer.Option(None, "--engagement", min=1, max=5),
    difficulty: int | None = typer.Option(None, "--difficulty", min=1, max=5),
    enjoyment: int | None = typer.Option(None, "--enjoyment", min=1, max=5),
) -> None:
    """Record the outcome of a recommendation."""
    metrics = [OutcomeMetric("accuracy", accuracy, target)] if accuracy is not None else []
    feedback = None
    if any(v is not None for v in (engagement, difficulty, enjoyment)):
        feedback = OutcomeFeedback(engagement or 3, difficulty or 3, enjoyment or 3)

    outcome = Outcome(
        id=new_id("outcome"),
        recommendation_id=recommendation_id,
        outcome_type=outcome_type,
        metrics=metrics,
        feedback=feedback,
    )
    try:
        result = _service(ctx).record_outcome(recommendation_id, outcome)
    except LearnLoopError as e:
        _fail(e)

    rprint(f"[green]✓[/green] Recorded {outcome_type.value} for {recommendation_id}")
    rprint(f"  Status: {result.recommendation.status.value}")
    for insight in result.outcome.adaptive_insights:
        rprint(f"  • {insight}")
    if result.adjustment is not None:
        rprint(f"  [yellow]→[/yellow] New adjustment: {result.adjustment.title} ({result.adjustment.id})")


@app.command("effectiveness")
def effectiveness(ctx: typer.Context, user_id: str = typer.Argument(...)) -> None:
    """Show completion and success rates across recommendations."""
    try:
        metrics = _service(ctx).effectiveness(user_id)
    except LearnLoopError as e:
        _fail(e)

    table = Table(title=f"Effectiveness: {user_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    by_status = metrics.pop("by_status", {})
    for name, value in metrics.items():
        if value is None:
            table.add_row(name, "-")
        else:
            table.add_row(name, f"{value:.2f}" if isinstance(value, float) else str(value))
    table.add_section()
    for status_name, count in by_status.items():
        table.add_row(f"status: {status_name}", str(count), style="dim")
    console.print(table)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint("[bold]learnloop[/bold] v0.1.0")
    rprint("  Adaptive learning analytics and recommendation engine")


def main() -> None:
    """Entry point for the CLI."""
    logger.remove()
    logger.add(sys.stderr, level="WARNING", format="<level>{message}</level>")
    app()


if __name__ == "__main__":
    main()
