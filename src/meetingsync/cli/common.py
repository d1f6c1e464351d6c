"""Shared utilities for meetingsync CLI commands."""
import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click

from ..config import Settings
from ..conflict_detector import ConflictDetector
from ..local_store import JsonFileStateStore
from ..orchestrator import SyncOrchestrator

# Default paths
DEFAULT_BASE_PATH = Path.home() / ".meetingsync"

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2

T = TypeVar("T")


def get_base_path(ctx_data_dir: Optional[Path] = None) -> Path:
    """Get the base path for meetingsync data.

    Priority: --data-dir flag > MEETINGSYNC_BASE_PATH env var > default path.

    Args:
        ctx_data_dir: Value from --data-dir CLI option, if provided.
    """
    if ctx_data_dir:
        return Path(ctx_data_dir)
    env_path = os.getenv("MEETINGSYNC_BASE_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


def configure_logging(verbosity: int, level: str = "INFO") -> None:
    """Route library logging to stderr at a level matching the verbosity.

    --verbose forces DEBUG and --quiet forces ERROR; otherwise the
    configured logging.level applies.
    """
    if verbosity >= VERBOSITY_VERBOSE:
        resolved = logging.DEBUG
    elif verbosity <= VERBOSITY_QUIET:
        resolved = logging.ERROR
    else:
        resolved = getattr(logging, level.upper(), logging.WARNING)

    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def should_print(verbosity: int, message_level: int) -> bool:
    return verbosity >= message_level


def echo_verbose(message: Any, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message)


def echo_normal(message: Any, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message)


def echo_quiet(message: Any, verbosity: int) -> None:
    """Print a message that is shown even in quiet mode."""
    click.echo(message)


def echo_error(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)


def load_settings(ctx: click.Context) -> Settings:
    """Settings for the active base path; exits with an error if unreadable."""
    base_path = get_base_path(ctx.obj.get("data_dir"))
    try:
        return Settings.load(base_path)
    except ValueError as e:
        echo_error(str(e))
        ctx.exit(1)


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Orchestrator over the JSON state file in the base directory."""
    store = JsonFileStateStore(settings.state_path)
    return SyncOrchestrator(
        store,
        detector=ConflictDetector(window_ms=settings.conflict_window_ms),
        key=settings.sync_key,
    )


def run_with_orchestrator(
    settings: Settings,
    operation: Callable[[SyncOrchestrator], Awaitable[T]],
) -> T:
    """Run one orchestrator operation on a fresh event loop, then shut down."""

    async def _run() -> T:
        orchestrator = build_orchestrator(settings)
        try:
            await orchestrator.initialize()
            return await operation(orchestrator)
        finally:
            await orchestrator.shutdown()

    return asyncio.run(_run())
