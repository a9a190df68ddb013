"""Sync command for the blockshipper CLI.

Commands:
- sync: Ship new blocks once, or periodically with --watch
"""

from __future__ import annotations

import sys
import time

import click

from blockshipper.cli.config import (
    build_shipper_config,
    build_storage,
    load_config,
)
from blockshipper.core.types import SourceType


def resolve_config(
    data_dir: str | None,
    local_bucket: str | None,
    labels: tuple[str, ...] = (),
    source: str | None = None,
) -> dict[str, str]:
    """Merge command-line overrides into the saved configuration."""
    config = load_config()
    if data_dir:
        config["data_dir"] = data_dir
    if local_bucket:
        config["storage_type"] = "local"
        config["local_path"] = local_bucket
    if labels:
        config["labels"] = ",".join(labels)
    if source:
        config["source"] = source
    return config


@click.command()
@click.option("--dir", "data_dir", type=click.Path(file_okay=False), help="Data directory holding blocks.")
@click.option("--local-bucket", type=click.Path(file_okay=False), help="Ship to a local directory instead of the configured store.")
@click.option("--label", "labels", multiple=True, help="External label key=value (repeatable).")
@click.option("--source", type=click.Choice([s.value for s in SourceType]), help="Source type written to shipped manifests.")
@click.option("--watch", "-w", is_flag=True, help="Keep running and sync periodically.")
@click.option("--interval", type=float, default=None, help="Seconds between passes in watch mode.")
def sync(
    data_dir: str | None,
    local_bucket: str | None,
    labels: tuple[str, ...],
    source: str | None,
    watch: bool,
    interval: float | None,
) -> None:
    """Upload blocks that were not shipped yet.

    Runs a single pass by default. Use --watch to run passes periodically
    until interrupted.
    """
    from blockshipper.scheduler import SyncScheduler
    from blockshipper.shipper import CounterMetrics, Shipper

    config = resolve_config(data_dir, local_bucket, labels, source)
    if interval is not None:
        config["sync_interval"] = str(interval)

    try:
        shipper_config = build_shipper_config(config)
        storage = build_storage(config)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not shipper_config.data_dir.is_dir():
        click.echo(f"Error: data directory {shipper_config.data_dir} does not exist", err=True)
        sys.exit(1)

    metrics = CounterMetrics()
    shipper = Shipper(shipper_config, storage, metrics=metrics)
    click.echo(f"Shipping blocks from {shipper_config.data_dir} to {storage.location}")

    if not watch:
        report = shipper.sync()
        click.echo(
            f"Uploaded: {len(report.uploaded)}, already present: {len(report.already_present)}, "
            f"skipped: {len(report.skipped)}, failed: {len(report.failed)}"
        )
        if report.has_failures or not report.meta_written:
            sys.exit(1)
        return

    scheduler = SyncScheduler(shipper, interval=shipper_config.sync_interval)
    scheduler.start()
    click.echo(f"Watching (every {shipper_config.sync_interval:.0f}s). Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        scheduler.stop()
        counts = metrics.snapshot()
        click.echo(", ".join(f"{name}={value}" for name, value in counts.items()))
