"""Cost monitoring CLI commands.

This module runs the monitoring engine against cost files:
- Continuous monitoring until interrupted
- A fixed number of evaluation cycles (for cron jobs and CI)
- Metrics and health summary on exit
"""

import logging
import signal
import sys
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from costwatch.click_group import CostwatchGroup
from costwatch.monitoring.config import LoggingSettings, load_settings, validate_settings
from costwatch.monitoring.engine import CostMonitor
from costwatch.monitoring.events import AlertTriggered, DataCollectionError, NotificationError
from costwatch.monitoring.models import (
    AlertSeverity,
    CostMonitorError,
    HealthStatus,
    MonitoringMetrics,
)
from costwatch.monitoring.providers import FileCostProvider
from costwatch.monitoring.scheduler import ManualTicker

logger = logging.getLogger(__name__)
console = Console()

SEVERITY_STYLES = {
    AlertSeverity.LOW: "blue",
    AlertSeverity.MEDIUM: "yellow",
    AlertSeverity.HIGH: "red",
    AlertSeverity.CRITICAL: "bold red",
}


def _apply_logging_settings(settings: LoggingSettings, verbose: bool) -> None:
    root = logging.getLogger()
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    root.setLevel(level)

    if settings.log_file:
        log_path = Path(settings.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path)
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(log_format))
        root.addHandler(handler)

    if not settings.enable_console_output:
        for handler in root.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(logging.WARNING)


def _parse_cost_source(value: str) -> FileCostProvider:
    """``name=path`` or just ``path`` (provider named after the file stem)."""
    if "=" in value:
        name, _, raw_path = value.partition("=")
    else:
        name, raw_path = Path(value).stem, value
    return FileCostProvider(name=name, path=Path(raw_path))


def _print_alert(event: AlertTriggered) -> None:
    alert = event.alert
    style = SEVERITY_STYLES.get(alert.severity, "white")
    console.print(f"[{style}]ALERT ({alert.severity.value})[/{style}] {alert.message}")


def _print_metrics(metrics: MonitoringMetrics) -> None:
    console.print("\n[bold cyan]Cost Monitoring Summary[/bold cyan]")
    console.print(f"[bold]Cost Today:[/bold] ${metrics.total_cost_today:.2f}")
    console.print(
        f"[bold]Change vs Yesterday:[/bold] ${metrics.cost_change_today:.2f} "
        f"({metrics.cost_change_percentage:.1f}%)"
    )
    console.print(f"[bold]Active Alerts:[/bold] {metrics.active_alerts}")
    console.print(f"[bold]Health Score:[/bold] {metrics.health_score}/100")

    if metrics.top_cost_drivers:
        table = Table(title="Top Cost Drivers", show_header=True, header_style="bold")
        table.add_column("Provider", style="cyan")
        table.add_column("Service", style="white")
        table.add_column("Cost", justify="right", style="green")
        table.add_column("Change", justify="right")
        for driver in metrics.top_cost_drivers:
            table.add_row(
                driver.provider, driver.service, f"${driver.cost:.2f}", f"${driver.change:+.2f}"
            )
        console.print(table)


def _print_health(health: HealthStatus) -> None:
    style = {"healthy": "green", "warning": "yellow"}.get(health.status, "red")
    console.print(f"[bold]Status:[/bold] [{style}]{health.status}[/{style}]")
    console.print(f"[bold]Notifications Sent:[/bold] {health.processed_notifications}")
    if health.last_error:
        console.print(f"[bold]Last Error:[/bold] {health.last_error}")


@click.group(name="monitor", cls=CostwatchGroup)
def monitor_group():
    """Monitor cloud costs and raise alerts.

    \b
    COMMANDS:
        run        Run the monitoring engine

    \b
    EXAMPLES:
        # Monitor until Ctrl-C
        $ costwatch monitor run --costs aws=./aws-costs.json

        # Evaluate three times and exit
        $ costwatch monitor run --costs ./aws-costs.yaml --ticks 3
    """
    pass


@monitor_group.command(name="run")
@click.option(
    "--costs",
    "cost_sources",
    multiple=True,
    required=True,
    help="Cost breakdown file, as PATH or NAME=PATH (repeatable)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.costwatch/monitoring.yaml)",
)
@click.option("--ticks", type=click.IntRange(min=1), default=None, help="Run N cycles and exit")
@click.option("--interval-ms", type=click.IntRange(min=1), default=None, help="Override interval")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def monitor_run(
    cost_sources: tuple[str, ...],
    config_path: Path | None,
    ticks: int | None,
    interval_ms: int | None,
    verbose: bool,
):
    """Run the monitoring engine.

    Collects immediately, then evaluates thresholds every interval.
    With --ticks, runs that many cycles back to back and exits with a
    summary; otherwise runs until interrupted.

    \b
    Examples:
        costwatch monitor run --costs aws=./aws.json --config ./monitoring.yaml
        costwatch monitor run --costs ./gcp.yaml --ticks 1
    """
    settings = load_settings(config_path)
    if interval_ms is not None:
        settings.data_collection_interval_ms = interval_ms

    _apply_logging_settings(settings.logging, verbose)

    # One-shot runs never wait on the interval, so its minimum does not apply
    errors = [
        e
        for e in validate_settings(settings)
        if ticks is None or not e.startswith("data_collection_interval_ms")
    ]
    if errors:
        console.print(f"[red]Error:[/red] Invalid settings ({len(errors)} problems)")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    try:
        providers = [_parse_cost_source(source) for source in cost_sources]
        config = settings.to_monitoring_config(providers)
        ticker = ManualTicker() if ticks is not None else None
        monitor = CostMonitor(config, ticker=ticker)
    except CostMonitorError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    monitor.subscribe(AlertTriggered, _print_alert)
    monitor.subscribe(
        DataCollectionError,
        lambda e: console.print(f"[yellow]Warning:[/yellow] collection failed for {e.provider}"),
    )
    monitor.subscribe(
        NotificationError,
        lambda e: console.print(f"[yellow]Warning:[/yellow] notification failed via {e.channel.id}"),
    )

    console.print(
        f"[bold]Monitoring {len(providers)} provider(s) with "
        f"{len(config.alert_thresholds)} threshold(s)[/bold]"
    )
    monitor.start()
    try:
        if isinstance(ticker, ManualTicker):
            ticker.tick(ticks)
        else:
            _wait_for_shutdown()
    finally:
        monitor.stop()

    _print_metrics(monitor.get_metrics())
    if settings.enable_health_checks:
        _print_health(monitor.get_health_status())
    console.print()


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    stop = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        stop.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)
    console.print("Press Ctrl-C to stop.")
    while not stop.wait(1):
        pass


__all__ = ["monitor_group"]
