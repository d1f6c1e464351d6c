"""Sync commands for meetingsync CLI."""
import json
import sys
from typing import Tuple

import click

from ..models import DEFAULT_SYNC_INTERVAL_MS, SyncProvider, SyncResult
from .common import (
    echo_error,
    echo_normal,
    echo_quiet,
    echo_verbose,
    get_base_path,
    load_settings,
    run_with_orchestrator,
)


@click.group()
def sync_group():
    """Sync commands (init, configure, status, push, pull, sync, reset)."""
    pass


def _parse_options(options: Tuple[str, ...]) -> dict:
    backend_config = {}
    for option in options:
        if "=" not in option:
            raise click.BadParameter(f"expected key=value, got '{option}'", param_hint="--option")
        key, value = option.split("=", 1)
        backend_config[key.strip()] = value
    return backend_config


def _report(result: SyncResult, verbosity: int, success_message: str) -> None:
    """Print a result summary; exit 1 on failure."""
    if result.success:
        echo_normal(click.style(f"✓ {success_message}", fg="green"), verbosity)
        if result.timestamp:
            echo_verbose(f"  Timestamp: {result.timestamp}", verbosity)
        return

    if result.queued:
        echo_normal(click.style("Offline - upload queued", fg="yellow"), verbosity)
        return

    echo_error(result.error or result.reason or "operation failed")
    if result.auth_expired:
        click.echo("Credentials expired - run 'meetingsync configure' again.", err=True)
    sys.exit(1)


@sync_group.command("init")
@click.pass_context
def init(ctx):
    """Create the data directory, config.yaml and the device identity."""
    verbosity = ctx.obj.get("verbosity", 1)
    base_path = get_base_path(ctx.obj.get("data_dir"))
    settings = load_settings(ctx)

    base_path.mkdir(parents=True, exist_ok=True)
    if not settings.config_path.exists():
        settings.save()
        echo_verbose(f"  Wrote {settings.config_path}", verbosity)

    async def _init(orchestrator):
        return await orchestrator.device.ensure_record()

    record = run_with_orchestrator(settings, _init)
    echo_normal(click.style(f"✓ Initialized meetingsync at {base_path}", fg="green"), verbosity)
    echo_normal(f"  Device: {record.name} ({record.id})", verbosity)


@sync_group.command("configure")
@click.argument("provider", type=click.Choice([p.value for p in SyncProvider]))
@click.option("--option", "-o", "options", multiple=True, metavar="KEY=VALUE",
              help="Provider setting, e.g. -o githubToken=ghp_... (repeatable)")
@click.option("--no-auto-sync", is_flag=True, default=False,
              help="Do not start the auto-sync timer")
@click.option("--interval-ms", type=int, default=None,
              help=f"Auto-sync interval in milliseconds (default: sync.interval_ms or {DEFAULT_SYNC_INTERVAL_MS})")
@click.pass_context
def configure(ctx, provider, options, no_auto_sync, interval_ms):
    """Configure a sync provider and test the connection.

    \b
    Examples:
        meetingsync configure filesystem -o folder=~/Dropbox/meetingflow
        meetingsync configure github_gist -o githubToken=ghp_xxx
        meetingsync configure s3 -o bucket=my-bucket -o prefix=meetingflow
    """
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)
    backend_config = _parse_options(options)

    async def _configure(orchestrator):
        return await orchestrator.configure(
            provider,
            backend_config,
            auto_sync=not no_auto_sync,
            interval_ms=interval_ms or settings.interval_ms,
        )

    echo_verbose(f"Configuring {provider} with keys: {', '.join(sorted(backend_config)) or '(none)'}", verbosity)
    result = run_with_orchestrator(settings, _configure)
    _report(result, verbosity, f"Sync provider '{provider}' configured and connection verified")


@sync_group.command("status")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_context
def status(ctx, as_json):
    """Show sync configuration and state."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    async def _status(orchestrator):
        return await orchestrator.get_sync_status()

    info = run_with_orchestrator(settings, _status)

    if as_json:
        echo_quiet(json.dumps(info, indent=2), verbosity)
        return

    echo_normal(click.style("=== Sync Status ===", fg="cyan", bold=True), verbosity)
    if not info["configured"]:
        echo_normal("Status: Not configured", verbosity)
        echo_normal("Run 'meetingsync configure PROVIDER -o key=value' to set up sync.", verbosity)
    else:
        echo_normal(f"Provider: {info['provider']}", verbosity)
        echo_normal(f"Enabled: {'yes' if info['enabled'] else 'no'}", verbosity)
        echo_normal(f"Last sync: {info['lastSync'] or 'never'}", verbosity)
        echo_normal(f"Queued operations: {info['queuedOperations']}", verbosity)
    echo_normal(f"Device: {info['deviceName']} ({info['deviceId']})", verbosity)


@sync_group.command("push")
@click.pass_context
def push(ctx):
    """Upload local data (skipped in favor of a pull if local is empty)."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    async def _push(orchestrator):
        return await orchestrator.sync_up()

    result = run_with_orchestrator(settings, _push)
    _report(result, verbosity, "Pushed local data")


@sync_group.command("pull")
@click.pass_context
def pull(ctx):
    """Download remote data and merge it into local data."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    async def _pull(orchestrator):
        return await orchestrator.sync_down()

    result = run_with_orchestrator(settings, _pull)
    if result.success and result.no_cloud_data:
        echo_normal("No remote data yet - run 'meetingsync push' first.", verbosity)
        return
    if result.success and result.conflict:
        echo_normal(click.style("Concurrent edits detected and merged", fg="yellow"), verbosity)
    _report(result, verbosity, "Pulled and merged remote data")


@sync_group.command("sync")
@click.pass_context
def sync(ctx):
    """Full cycle: pull and merge, then push the result."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    async def _sync(orchestrator):
        return await orchestrator.sync()

    result = run_with_orchestrator(settings, _sync)
    _report(result, verbosity, "Sync complete")


@sync_group.command("reset")
@click.option("--yes", is_flag=True, default=False, help="Skip confirmation")
@click.pass_context
def reset(ctx, yes):
    """Remove sync configuration, queue and device identity (keeps local data)."""
    verbosity = ctx.obj.get("verbosity", 1)
    settings = load_settings(ctx)

    if not yes and not click.confirm("Clear all sync settings for this device?"):
        echo_normal(click.style("Reset cancelled.", fg="yellow"), verbosity)
        return

    async def _reset(orchestrator):
        await orchestrator.clear_sync_data()

    run_with_orchestrator(settings, _reset)
    echo_normal(click.style("✓ Sync data cleared", fg="green"), verbosity)
