"""CLI command groups."""

from costwatch.commands.config import config_group
from costwatch.commands.monitor import monitor_group

__all__ = ["config_group", "monitor_group"]
