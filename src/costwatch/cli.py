"""costwatch CLI entry point."""

import logging

import click

from costwatch import __version__
from costwatch.click_group import CostwatchGroup
from costwatch.commands import config_group, monitor_group


@click.group(
    cls=CostwatchGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context) -> None:
    """costwatch - cloud cost monitoring and alerting.

    Collects cost breakdowns from providers, evaluates alert thresholds
    and notifies Slack, email, webhooks, Teams and Discord.

    \b
    COMMANDS:
        config        Manage monitoring settings
        monitor       Run the monitoring engine

    \b
    CONFIGURATION:
        Settings file: ~/.costwatch/monitoring.yaml
        Create one:    costwatch config init

    For help on any command: costwatch <command> --help
    """
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


main.add_command(config_group)
main.add_command(monitor_group)


if __name__ == "__main__":
    main()
