"""Monitoring settings CLI commands.

This module provides commands for managing the monitoring settings file:
- Create a sample settings file
- Validate settings
- Show effective settings with secrets redacted
"""

import logging
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console

from costwatch.click_group import CostwatchGroup
from costwatch.log_sanitizer import LogSanitizer
from costwatch.monitoring.config import (
    DEFAULT_SETTINGS_FILE,
    create_sample_settings,
    load_settings,
    validate_settings,
)
from costwatch.monitoring.models import MonitoringConfigError

logger = logging.getLogger(__name__)
console = Console()

_path_option = click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Settings file (default: {DEFAULT_SETTINGS_FILE})",
)


@click.group(name="config", cls=CostwatchGroup)
def config_group():
    """Manage monitoring settings.

    \b
    COMMANDS:
        init       Write a sample settings file
        validate   Check a settings file for errors
        show       Print effective settings (secrets redacted)

    \b
    EXAMPLES:
        $ costwatch config init
        $ costwatch config validate --path ./monitoring.yaml
    """
    pass


@config_group.command(name="init")
@_path_option
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(path: Path | None, force: bool):
    """Write a sample settings file.

    \b
    Examples:
        costwatch config init
        costwatch config init --path ./monitoring.yaml --force
    """
    target = path or DEFAULT_SETTINGS_FILE
    if target.exists() and not force:
        console.print(f"[red]Error:[/red] {target} already exists (use --force to overwrite)")
        sys.exit(1)

    try:
        written = create_sample_settings(target)
    except MonitoringConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Sample settings written to {written}[/green]")
    console.print("Edit the webhook URLs and email addresses before running the monitor.")


@config_group.command(name="validate")
@_path_option
def config_validate(path: Path | None):
    """Check a settings file for errors.

    Exits with status 1 when any problem is found.
    """
    settings = load_settings(path)
    errors = validate_settings(settings)

    if errors:
        console.print(f"[red]Found {len(errors)} configuration error(s):[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    console.print(
        f"[green]Settings are valid[/green] "
        f"({len(settings.alerts)} alerts, {len(settings.notification_channels)} channels)"
    )


@config_group.command(name="show")
@_path_option
def config_show(path: Path | None):
    """Print effective settings with secrets redacted."""
    settings = load_settings(path)
    data = settings.to_dict()
    data["notification_channels"] = {
        channel_id: LogSanitizer.sanitize_config(channel)
        for channel_id, channel in data["notification_channels"].items()
    }
    click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


__all__ = ["config_group"]
