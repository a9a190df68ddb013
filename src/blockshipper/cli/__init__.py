"""Command-line interface for blockshipper.

This module provides the main CLI entry point and assembles all commands.

Commands:
- sync: Ship new blocks to the object store (once or with --watch)
- status: List local blocks and their shipping state
- timestamps: Print min time and max synced time
- config: Show or change the saved configuration
"""

from __future__ import annotations

import logging

import click

from blockshipper.cli.config import (
    build_shipper_config,
    build_storage,
    get_config_dir,
    get_config_file,
    load_config,
    parse_labels,
    save_config,
)
from blockshipper.cli.configure import config_group
from blockshipper.cli.status import status, timestamps
from blockshipper.cli.sync import sync


@click.group()
@click.version_option(package_name="blockshipper")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """blockshipper - Upload immutable data blocks to object storage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(sync)
cli.add_command(status)
cli.add_command(timestamps)
cli.add_command(config_group)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "build_shipper_config",
    "build_storage",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "parse_labels",
    "save_config",
]
