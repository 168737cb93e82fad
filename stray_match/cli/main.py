"""
CLI interface for stray_match.

Provides command-line access to the matching pipeline and its data.
"""

import sys
from typing import Optional
import sqlite3

import typer
from rich.console import Console
from rich.table import Table

from stray_match.app import build_services
from stray_match.config.settings import load_settings
from stray_match.core.errors import MalformedRequest, RateLimitExceeded
from stray_match.core.geo import Coordinates
from stray_match.core.orchestrator import AuthenticatedUser, CandidateOutcome, MatchRequest
from stray_match.demo.seed_demo_data import seed_demo_data
from stray_match.logging_config import setup_logging
from stray_match.notify.nearby import NearbySightingAlerts
from stray_match.notify.push import create_push_relay
from stray_match.storage.animals import AnimalRepository
from stray_match.storage.matches import MatchStore
from stray_match.storage.repository import UsageRepository
from stray_match.storage.schema import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_OUTCOME_STYLE = {
    CandidateOutcome.ACCEPTED: "green",
    CandidateOutcome.DUPLICATE: "cyan",
    CandidateOutcome.ALREADY_MATCHED: "cyan",
    CandidateOutcome.FAILED: "red",
    CandidateOutcome.NO_ANALYSIS: "yellow",
}


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Lost-animal matching pipeline."""
    setup_logging(load_settings().log_level)
    if ctx.invoked_subcommand is None:
        console.print("stray-match - Use --help to see available commands")


@app.command()
def init():
    """Initialize the database."""
    settings = load_settings()
    try:
        initialize_schema(settings.db_path)
        console.print(f"[green]✓[/] Database initialized at {settings.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def demo():
    """Seed a lost cat, a matching sighting and an unrelated dog."""
    settings = load_settings()
    try:
        ids = seed_demo_data(settings.db_path)
    except Exception as e:
        console.print(f"[red]Error seeding demo data:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Demo data inserted")
    console.print(f"Lost report: {ids['lost_animal_id']}")
    console.print(f"Sightings: {ids['sighting_id']}, {ids['dog_sighting_id']}")
    console.print(f"Try: stray-match match --sighting {ids['sighting_id']} --user {ids['user_id']}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def match(
    sighting: Optional[str] = typer.Option(
        None,
        "--sighting",
        "-s",
        help="Match this sighting against active lost reports"
    ),
    lost: Optional[str] = typer.Option(
        None,
        "--lost",
        "-l",
        help="Match this lost report against recent sightings"
    ),
    user: str = typer.Option(
        "cli",
        "--user",
        "-u",
        help="User the run is rate limited and billed against"
    )
):
    """
    Run the matching pipeline for one sighting or lost report.

    Exactly one of --sighting and --lost must be given. New matches are
    stored and their owners notified when push is configured.
    """
    try:
        request = MatchRequest(lost_animal_id=lost, sighting_id=sighting)
    except MalformedRequest as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    services = build_services(load_settings())
    try:
        caller = AuthenticatedUser(user_id=user, tier=services.api.tier_for(user))
        result = services.orchestrator.run(request, caller)
    except RateLimitExceeded as e:
        console.print(f"[yellow]Rate limited:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("[yellow]Database not initialized.[/] Run `stray-match init` first.")
            sys.exit(EXIT_CODE_FAIL)
        raise
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        services.close()

    _display_pipeline_result(result)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def analyze(
    image: str = typer.Argument(..., help="Image URL or data URI"),
    user: str = typer.Option("cli", "--user", "-u", help="User the call is billed to"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Replace the default prompt")
):
    """Describe one animal photo with the vision model."""
    services = build_services(load_settings())
    try:
        tier = services.api.tier_for(user)
        limit = services.rate_limiter.check_and_consume(user, tier)
        if not limit.allowed:
            console.print(f"[yellow]Rate limited[/] ({tier.value} tier) until {limit.reset_at.isoformat()}")
            sys.exit(EXIT_CODE_FAIL)
        analysis, usage, cost = services.describer.describe(image, user, prompt=prompt)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        services.close()

    table = Table(title="Animal analysis")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in analysis.items():
        table.add_row(str(key), ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)
    console.print(f"Tokens: {usage.total_tokens}  Cost: {_format_currency(cost)}  Remaining today: {max(0, limit.remaining - 1)}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's events"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of events to show")
):
    """Show recent vision-model usage events."""
    settings = load_settings()
    try:
        events = UsageRepository(settings.db_path).get_recent_events(user_id=user, limit=limit)
    except sqlite3.OperationalError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not events:
        console.print("[dim]No usage events recorded.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Recent usage")
    for column in ("Time", "User", "Feature", "Model", "Tokens", "Cost", "OK"):
        table.add_column(column)
    for event in events:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            event.user_id,
            event.feature,
            event.model,
            str(event.total_tokens),
            _format_currency(event.cost),
            "[green]yes[/]" if event.success else "[red]no[/]",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def matches(
    lost_animal_id: str = typer.Argument(..., help="Lost report id"),
    all_matches: bool = typer.Option(False, "--all", "-a", help="Include dismissed matches")
):
    """List stored matches for a lost report."""
    settings = load_settings()
    try:
        results = MatchStore(settings.db_path).list_matches(lost_animal_id, include_dismissed=all_matches)
    except sqlite3.OperationalError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not results:
        console.print(f"[dim]No matches for {lost_animal_id}.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"Matches for {lost_animal_id}")
    table.add_column("Sighting")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    table.add_column("Found")
    for result in results:
        table.add_row(
            result.sighting_id,
            f"{result.confidence:.0f}%",
            result.reason,
            result.created_at.strftime("%Y-%m-%d %H:%M") if result.created_at else "",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def nearby(
    latitude: float = typer.Option(..., "--lat", help="Latitude of the device"),
    longitude: float = typer.Option(..., "--lng", help="Longitude of the device"),
    push_token: str = typer.Option(..., "--token", "-t", help="Push token to alert"),
    radius: float = typer.Option(5.0, "--radius", "-r", help="Search radius in km"),
    hours: int = typer.Option(24, "--hours", help="Only sightings from the last N hours")
):
    """Send one "animals near you" alert for recent sightings around a point."""
    settings = load_settings()
    try:
        location = Coordinates(latitude=latitude, longitude=longitude)
        relay = create_push_relay(settings.pipeline_config().notifications)
        alerts = NearbySightingAlerts(AnimalRepository(settings.db_path), relay, push_token)
        announced = alerts.check(location, radius_km=radius, hours=hours)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not announced:
        console.print("[dim]No new sightings nearby.[/]")
    else:
        console.print(f"[green]✓[/] Announced {len(announced)} sightings: {', '.join(r.id for r in announced)}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on")
):
    """Serve POST /match and POST /analyze."""
    from wsgiref.simple_server import make_server

    from stray_match.api.wsgi import create_app

    services = build_services(load_settings())
    server = make_server(host, port, create_app(services.api))
    console.print(f"Listening on http://{host}:{port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        console.print("Shutting down")
    finally:
        server.server_close()
        services.close()


def _format_currency(amount: float) -> str:
    """Format currency with enough precision for per-call costs."""
    return f"${abs(amount):,.4f}"


def _display_pipeline_result(result):
    """Summarize one pipeline run."""
    console.print(f"\n[bold]Pipeline run {result.run_id}[/bold] ({result.request.trigger})")
    console.print("-" * 40)
    if result.search_path is not None:
        console.print(f"Search path: {result.search_path.value}")
    console.print(f"Rate limit remaining today: {result.rate_limit.remaining}")

    if not result.reports:
        console.print("\n[dim]No candidates found.[/]")
        return

    table = Table()
    table.add_column("Lost report")
    table.add_column("Sighting")
    table.add_column("Outcome")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    for report in result.reports:
        style = _OUTCOME_STYLE.get(report.outcome, "white")
        table.add_row(
            report.lost_animal_id,
            report.sighting_id,
            f"[{style}]{report.outcome.value}[/]",
            "" if report.confidence is None else f"{report.confidence:.0f}",
            report.reason or "",
        )
    console.print(table)
    console.print(f"\nNew matches: {len(result.new_matches)}")


if __name__ == "__main__":
    app()
