"""meetingsync CLI - keep meetings and stakeholders in sync across devices

Command modules:
- sync.py: init, configure, status, push, pull, sync, reset
- config.py: config set, get, show
- common.py: shared utilities
"""
from pathlib import Path
import click

# Local imports
from .common import (
    VERBOSITY_NORMAL,
    VERBOSITY_QUIET,
    VERBOSITY_VERBOSE,
    configure_logging,
    get_base_path,
)
from .config import config_group
from .sync import sync_group
from ..config import Settings

# CLI version - matches project version
__version__ = "0.1.0"


@click.group()
@click.version_option(version=__version__, prog_name="meetingsync")
@click.option('--data-dir', type=click.Path(), default=None, envvar='MEETINGSYNC_BASE_PATH',
              help='Base directory for sync state and config (default: ~/.meetingsync)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """meetingsync - cross-device sync for meetings and stakeholders

    \b
    Key Commands:
        init              Create the data directory and device identity
        configure         Choose a provider and test the connection
        status            Show sync state
        push              Upload local data
        pull              Download and merge remote data
        sync              Pull, merge, then push
        reset             Forget sync settings for this device
        config            Configuration management

    \b
    Examples:
        meetingsync init
        meetingsync configure filesystem -o folder=~/Dropbox/meetingflow
        meetingsync sync
    """
    ctx.ensure_object(dict)

    # Validate mutually exclusive flags
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    ctx.obj['data_dir'] = Path(data_dir) if data_dir else None

    try:
        level = Settings.load(get_base_path(ctx.obj['data_dir'])).log_level
    except ValueError:
        level = "WARNING"
    configure_logging(ctx.obj['verbosity'], level)


# Register sync commands at the top level
for _name in ('init', 'configure', 'status', 'push', 'pull', 'sync', 'reset'):
    cli.add_command(sync_group.commands[_name])

# Register config command group (config set, get, show)
cli.add_command(config_group, name='config')


def main():
    """Console script entry point."""
    cli(obj={})


__all__ = ["cli", "main", "__version__"]
