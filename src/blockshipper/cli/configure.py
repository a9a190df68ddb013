"""Config commands for the blockshipper CLI.

Commands:
- config show: Print the saved configuration
- config set: Set one configuration key
- config unset: Remove one configuration key
"""

from __future__ import annotations

import sys

import click

from blockshipper.cli.config import CONFIG_KEYS, CREDENTIAL_ENV, load_config, save_config


@click.group(name="config")
def config_group() -> None:
    """Manage the saved configuration."""


@config_group.command("show")
def show() -> None:
    """Print the saved configuration."""
    values = load_config()
    if not values:
        click.echo("No configuration saved.")
        return
    for key in sorted(values):
        click.echo(f"{key} = {values[key]}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Set KEY to VALUE."""
    if key in CREDENTIAL_ENV:
        click.echo(
            f"Error: {key} is not stored in the config file, set {CREDENTIAL_ENV[key]} instead",
            err=True,
        )
        sys.exit(1)
    if key not in CONFIG_KEYS:
        click.echo(f"Error: unknown key {key!r}. Known keys: {', '.join(CONFIG_KEYS)}", err=True)
        sys.exit(1)
    values = load_config()
    values[key] = value
    save_config(values)
    click.echo(f"Set {key}")


@config_group.command("unset")
@click.argument("key")
def unset_value(key: str) -> None:
    """Remove KEY from the configuration."""
    values = load_config()
    if values.pop(key, None) is None:
        click.echo(f"{key} was not set")
        return
    save_config(values)
    click.echo(f"Removed {key}")
