"""Shared utilities for shadowsync CLI commands."""
import os
import sys
from pathlib import Path
from typing import Optional

import click

from ..config import ShadowSyncConfig, load_config, CONFIG_FILENAME
from ..errors import ConfigurationError

# Default paths
DEFAULT_BASE_PATH = Path.home() / ".shadowsync"
BASE_PATH_ENV = "SHADOWSYNC_BASE_PATH"

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2


def get_base_path(ctx_data_dir: Optional[Path] = None) -> Path:
    """Get the base path for shadowsync data.

    Priority: --data-dir flag > SHADOWSYNC_BASE_PATH env var > default path.

    Args:
        ctx_data_dir: Value from --data-dir CLI option, if provided.
    """
    if ctx_data_dir:
        return Path(ctx_data_dir)
    env_path = os.getenv(BASE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings."""
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message, err=False)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message, err=False)


def echo_quiet(message: str, verbosity: int) -> None:
    """Print a critical message that should always be shown (even in quiet mode)."""
    click.echo(message, err=False)


def fail(message: str) -> None:
    """Print an error in red and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"))
    sys.exit(1)


def require_config(ctx) -> ShadowSyncConfig:
    """Load config.yaml for the current base path, or exit if it is unusable."""
    base_path = get_base_path(ctx.obj.get('data_dir'))
    if not (base_path / CONFIG_FILENAME).exists():
        fail("shadowsync not initialized. Run 'shadowsync init' first.")
    try:
        return load_config(base_path)
    except ConfigurationError as e:
        fail(str(e))
