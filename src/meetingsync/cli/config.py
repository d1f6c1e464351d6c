"""Configuration management commands for meetingsync CLI."""
import sys

import click

from ..config import parse_value
from .common import echo_error, echo_normal, echo_quiet, load_settings


@click.group()
def config_group():
    """Configuration management commands."""
    pass


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    Examples:
        meetingsync config set sync.interval_ms 60000
        meetingsync config set logging.level DEBUG
    """
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    settings.set(key, parse_value(value))
    try:
        settings.save()
    except OSError as e:
        echo_error(f"Failed to set config: {e}")
        sys.exit(1)
    echo_normal(click.style(f"✓ Set {key} = {value}", fg="green"), verbosity)


@config_group.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value (e.g. sync.interval_ms)."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    try:
        value = settings.get(key)
    except KeyError:
        echo_quiet(click.style(f"Key '{key}' not found", fg="yellow"), verbosity)
        sys.exit(1)
    echo_quiet(value, verbosity)


@config_group.command("show")
@click.pass_context
def config_show(ctx) -> None:
    """Display full configuration (defaults included)."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(settings.dump(), verbosity)
