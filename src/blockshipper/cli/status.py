"""Read-only commands for the blockshipper CLI.

Commands:
- status: List local blocks and whether they are recorded as shipped
- timestamps: Print the min time and the max synced time
"""

from __future__ import annotations

import sys

import click

from blockshipper.cli.config import build_shipper_config
from blockshipper.cli.sync import resolve_config


@click.command()
@click.option("--dir", "data_dir", type=click.Path(file_okay=False), help="Data directory holding blocks.")
def status(data_dir: str | None) -> None:
    """Show local blocks and their shipping state."""
    from blockshipper.shipper import (
        MetaFileError,
        MetaFileNotFoundError,
        ShipperError,
        iter_block_metas,
        read_meta_file,
    )

    try:
        shipper_config = build_shipper_config(resolve_config(data_dir, None))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        uploaded = set(read_meta_file(shipper_config.data_dir).uploaded)
    except MetaFileNotFoundError:
        uploaded = set()
    except MetaFileError as e:
        click.echo(f"Warning: {e}", err=True)
        uploaded = set()

    try:
        blocks = list(iter_block_metas(shipper_config.data_dir))
    except ShipperError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not blocks:
        click.echo("No blocks found.")
        return

    for block in blocks:
        state = "shipped" if block.ulid in uploaded else "pending"
        click.echo(
            f"{block.ulid}  level={block.compaction_level}  "
            f"[{block.min_time}, {block.max_time})  {state}"
        )


@click.command()
@click.option("--dir", "data_dir", type=click.Path(file_okay=False), help="Data directory holding blocks.")
def timestamps(data_dir: str | None) -> None:
    """Print the earliest local time and the latest shipped time."""
    from blockshipper.shipper import ShipperError, block_timestamps

    try:
        shipper_config = build_shipper_config(resolve_config(data_dir, None))
        min_time, max_synced_time = block_timestamps(shipper_config.data_dir)
    except (ValueError, ShipperError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"min_time: {min_time}")
    click.echo(f"max_synced_time: {max_synced_time if max_synced_time is not None else 'none'}")
