"""Click group that shows contextual help on usage errors."""

import sys
from typing import Any

import click

_USAGE_ERRORS = (
    click.exceptions.UsageError,
    click.exceptions.BadParameter,
    click.exceptions.MissingParameter,
)


class CostwatchGroup(click.Group):
    """Click group that prints the failing command's help after a usage error."""

    def main(self, *args: Any, **kwargs: Any) -> Any:
        try:
            return super().main(*args, **kwargs)
        except _USAGE_ERRORS as e:
            click.echo(f"Error: {e.format_message()}", err=True)
            if e.ctx is not None:
                click.echo("")
                click.echo(e.ctx.get_help())
                e.ctx.exit(e.exit_code)
            sys.exit(e.exit_code)

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except _USAGE_ERRORS as e:
            click.echo(f"Error: {e.format_message()}", err=True)

            # Prefer the subcommand context so its help is shown
            error_ctx = e.ctx or ctx
            click.echo("")
            click.echo(error_ctx.get_help())
            error_ctx.exit(e.exit_code)


__all__ = ["CostwatchGroup"]
