"""Command-line interface for notasync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- login: Store Google Drive credentials
- logout: Forget stored credentials
- sync: Synchronize local data with Google Drive
- status: Show device id and last sync times
- clear-cloud: Delete all remote data
"""

from __future__ import annotations

import logging

import click

from notasync.client.cli.auth import login, logout
from notasync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db_path,
    load_config,
    save_config,
)
from notasync.client.cli.sync import clear_cloud, status, sync

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send notasync logs to stderr (warnings only unless verbose)."""
    logger = logging.getLogger("notasync")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="notasync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def cli(verbose: bool) -> None:
    """notasync - Sync notes, tasks and settings through Google Drive."""
    setup_logging(verbose)


# Credential commands
cli.add_command(login)
cli.add_command(logout)

# Sync commands
cli.add_command(sync)
cli.add_command(status)
cli.add_command(clear_cloud)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    "setup_logging",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_state_db_path",
    "load_config",
    "save_config",
]
