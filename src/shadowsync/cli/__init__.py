"""shadowsync CLI - keep a mirror kind in step with a source kind

This module provides a modular CLI structure for shadowsync commands.
Command groups are organized into separate modules:
- session.py: init
- sync.py: sync, check, relationships
- config.py: config set, get, show
- common.py: shared utilities
"""
import logging
from pathlib import Path

import click

from .. import __version__

# Local imports
from .common import get_base_path, BASE_PATH_ENV
from .session import session_group
from .sync import sync_group
from .config import config_group


@click.group()
@click.version_option(version=__version__, prog_name="shadowsync")
@click.option('--data-dir', type=click.Path(), default=None, envvar=BASE_PATH_ENV,
              help='Base directory for shadowsync data (default: ~/.shadowsync)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output and debug logging')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """shadowsync - mirror one record kind into another

    Every published source record gets exactly one mirror record with the
    same name and slug; reconciliation repairs any drift.

    \b
    Key Commands:
        init              Create config.yaml and the record store
        sync              Reconcile a source kind with its mirror kind
        check             Check one record's association
        relationships     List configured relationships
        config            Configuration management

    \b
    Examples:
        shadowsync init -r staff:offices
        shadowsync sync --cpt=staff --tax=offices --dry-run
        shadowsync check post_type --id=<id>
    """
    from .common import VERBOSITY_QUIET, VERBOSITY_NORMAL, VERBOSITY_VERBOSE

    ctx.ensure_object(dict)

    # Validate mutually exclusive flags
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    # Set verbosity level
    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if data_dir:
        ctx.obj['data_dir'] = Path(data_dir)
    else:
        ctx.obj['data_dir'] = None


# Register session commands (init)
cli.add_command(session_group.commands['init'])

# Register sync commands (sync, check, relationships)
cli.add_command(sync_group.commands['sync'])
cli.add_command(sync_group.commands['check'])
cli.add_command(sync_group.commands['relationships'])

# Register config command group (config set, get, show)
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    '__version__',
    'cli',
    'main',
    'get_base_path',
]
