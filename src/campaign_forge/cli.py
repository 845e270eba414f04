"""
Campaign Forge CLI.

Command-line interface for generating simulated attack campaigns.

Usage:
    campaign-forge generate apt --complexity high --seed 42
    campaign-forge generate ransomware --start 2d --end now --environments 3
    campaign-forge scenarios
    campaign-forge rules
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from campaign_forge import __version__
from campaign_forge.config import settings
from campaign_forge.logging_config import LogConfig, configure_logging
from campaign_forge.persistence import JsonlBatchSink, write_batches
from campaign_forge.simulation.correlation import default_rule_registry
from campaign_forge.simulation.errors import InvalidTimeWindowError, UnknownScenarioError
from campaign_forge.simulation.models import CampaignResult, Complexity, TimePattern
from campaign_forge.simulation.orchestrator import CampaignOrchestrator, CampaignRequest
from campaign_forge.simulation.scenarios import default_catalog

app = typer.Typer(
    name="campaign-forge",
    help="Simulate multi-stage attack campaigns and the security data they produce.",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"Campaign Forge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
    ] = settings.log_level,
    log_format: Annotated[
        str,
        typer.Option("--log-format", help="Log format: json or human"),
    ] = settings.log_format,
):
    """Campaign Forge - attack campaign simulation and event correlation."""
    configure_logging(LogConfig(level=log_level, format=log_format))


# =============================================================================
# Generation
# =============================================================================


@app.command()
def generate(
    scenario: Annotated[
        str,
        typer.Argument(help="Scenario type: apt, ransomware, insider, supply_chain"),
    ],
    complexity: Annotated[
        Complexity,
        typer.Option("--complexity", "-c", help="Campaign and network complexity"),
    ] = Complexity.MEDIUM,
    detection_rate: Annotated[
        Optional[float],
        typer.Option("--detection-rate", "-d", min=0.0, max=1.0, help="Detection probability"),
    ] = None,
    logs_per_stage: Annotated[
        Optional[int],
        typer.Option("--logs-per-stage", min=1, help="Events per stage technique"),
    ] = None,
    event_count: Annotated[
        int,
        typer.Option("--events", "-e", min=0, help="Campaign-level correlation events"),
    ] = 0,
    target_count: Annotated[
        Optional[int],
        typer.Option("--targets", min=1, help="Maximum target assets per stage"),
    ] = None,
    namespace: Annotated[
        Optional[str],
        typer.Option("--namespace", "-n", help="Namespace/space for output streams"),
    ] = None,
    start: Annotated[
        Optional[str],
        typer.Option("--start", help="Window start (ISO 8601 or relative, e.g. 2d)"),
    ] = None,
    end: Annotated[
        Optional[str],
        typer.Option("--end", help="Window end (ISO 8601, relative or now)"),
    ] = None,
    pattern: Annotated[
        Optional[TimePattern],
        typer.Option("--pattern", "-p", help="Stage time distribution"),
    ] = None,
    seed: Annotated[
        Optional[int],
        typer.Option("--seed", "-s", help="Seed for reproducible output"),
    ] = None,
    environments: Annotated[
        int,
        typer.Option("--environments", min=1, help="Independent environments to build"),
    ] = 1,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Directory for JSON-lines output"),
    ] = None,
    write: Annotated[
        bool,
        typer.Option("--write/--no-write", help="Write batches to the output directory"),
    ] = True,
):
    """Generate a campaign and write its logs and alerts."""
    request = CampaignRequest(
        scenario_type=scenario,
        complexity=complexity,
        detection_rate=detection_rate,
        logs_per_stage=logs_per_stage,
        event_count=event_count,
        target_count=target_count,
        namespace=namespace,
        start=start,
        end=end,
        time_pattern=pattern,
        seed=seed,
    )
    orchestrator = CampaignOrchestrator()

    async def _generate() -> list[CampaignResult]:
        if environments > 1:
            return await orchestrator.run_environments(request, environments)
        return [await orchestrator.run(request)]

    try:
        with console.status(f"Building [bold]{scenario}[/bold] campaign..."):
            results = asyncio.run(_generate())
    except UnknownScenarioError as e:
        console.print(f"[red]{e}[/red]")
        console.print(f"Available: {', '.join(t.value for t in default_catalog().scenario_types)}")
        raise typer.Exit(1)
    except InvalidTimeWindowError as e:
        console.print(f"[red]Invalid time window: {e}[/red]")
        raise typer.Exit(1)

    for result in results:
        _print_result(result)
        if write:
            directory = output_dir or settings.ensure_output_dir()
            sink = JsonlBatchSink(Path(directory) / result.campaign.id)
            written = write_batches(result, sink)
            console.print(
                f"[green]✓[/green] Wrote {written} documents to [bold]{sink.directory}[/bold]"
            )


def _print_result(result: CampaignResult) -> None:
    """Print a campaign result summary."""
    campaign = result.campaign
    console.print()
    console.print(f"[bold]Campaign: {campaign.name}[/bold] ({campaign.id})")
    console.print(f"  Type: {campaign.type.value}")
    console.print(f"  Threat actor: {campaign.threat_actor}")
    console.print(f"  Namespace: {result.namespace}")
    console.print(
        f"  Window: {campaign.duration.start:%Y-%m-%d %H:%M} -> "
        f"{campaign.duration.end:%Y-%m-%d %H:%M}"
    )
    if result.cancelled:
        console.print("  [yellow]Build was cancelled; result is partial[/yellow]")
    console.print()

    table = Table(title="Stages")
    table.add_column("#", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Tactic")
    table.add_column("Techniques")
    table.add_column("Logs", justify="right")
    table.add_column("Detected")

    logs_by_stage = {logs.stage_id: logs for logs in result.stage_logs}
    for stage in result.stages:
        stage_logs = logs_by_stage.get(stage.id)
        if stage_logs is None:
            detected = "[dim]not run[/dim]"
            count = "-"
        else:
            detected = "[green]yes[/green]" if stage_logs.detected else "[red]no[/red]"
            count = str(len(stage_logs.logs))
        table.add_row(
            str(stage.index + 1),
            stage.name,
            stage.tactic,
            ", ".join(stage.techniques),
            count,
            detected,
        )
    console.print(table)

    summary = result.summary()
    console.print(
        f"  Alerts: {summary['detected_alerts']}  "
        f"Missed: {summary['missed_activities']}  "
        f"Clusters: {summary['correlation_clusters']}  "
        f"Movement paths: {summary['lateral_movement_paths']}"
    )
    if result.failures:
        console.print(f"  [yellow]Degraded steps: {len(result.failures)}[/yellow]")
        for failure in result.failures:
            console.print(f"    [dim]{failure.component}: {failure.message}[/dim]")


# =============================================================================
# Catalog Commands
# =============================================================================


@app.command()
def scenarios():
    """List available campaign templates."""
    table = Table(title="Campaign Templates")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Threat Actor")
    table.add_column("Stages", justify="right")
    table.add_column("Duration (days)")

    for template in default_catalog().list_templates():
        low, high = template.duration_days
        table.add_row(
            template.type.value,
            template.name,
            template.threat_actor,
            str(len(template.stages)),
            f"{low}-{high}",
        )

    console.print(table)


@app.command()
def rules():
    """List correlation rules."""
    table = Table(title="Correlation Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Techniques")
    table.add_column("Window")
    table.add_column("Min Events", justify="right")

    for rule in default_rule_registry():
        table.add_row(
            rule.id,
            rule.name,
            ", ".join(rule.techniques),
            str(rule.time_window),
            str(rule.minimum_events),
        )

    console.print(table)


if __name__ == "__main__":
    app()
