"""Workspace setup commands for shadowsync CLI."""
from typing import Tuple

import click
import yaml

from ..config import CONFIG_FILENAME, DEFAULT_CONFIG_TEMPLATE, load_config
from ..errors import ShadowSyncError
from ..event_bus import EventBus

# Local CLI imports
from .common import get_base_path, echo_normal, echo_quiet, fail


@click.group()
def session_group():
    """Workspace setup commands."""
    pass


def _parse_pair(value: str) -> Tuple[str, str]:
    source_kind, sep, mirror_kind = value.partition(":")
    if not sep or not source_kind or not mirror_kind:
        raise click.BadParameter(f"expected SOURCE:MIRROR, got {value!r}")
    return source_kind, mirror_kind


@session_group.command("init")
@click.option('--relationship', '-r', 'relationships', multiple=True, metavar='SOURCE:MIRROR',
              help='Relationship to declare in the new config (repeatable)')
@click.pass_context
def init(ctx, relationships) -> None:
    """Initialize a shadowsync workspace.

    Creates the following:
    - the base directory (~/.shadowsync by default)
    - config.yaml with default settings
    - the SQLite record store, with the configured kinds declared

    \b
    Examples:
        shadowsync init
        shadowsync init -r staff:offices
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', 1)
    pairs = [_parse_pair(value) for value in relationships]

    echo_normal(click.style("Initializing shadowsync...", fg="cyan", bold=True), verbosity)

    # 1. Create directory
    base_path.mkdir(parents=True, exist_ok=True)
    echo_normal(f" ✓ Created directory: {base_path}", verbosity)

    # 2. Create config.yaml
    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        if pairs:
            config_data = yaml.safe_load(DEFAULT_CONFIG_TEMPLATE)
            config_data['relationships'] = [
                {'source': source_kind, 'mirror': mirror_kind} for source_kind, mirror_kind in pairs
            ]
            config_path.write_text(yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False))
        else:
            config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
        echo_normal(f" ✓ Created config: {config_path}", verbosity)
    else:
        echo_normal(f" ⚠ Config exists: {config_path}", verbosity)

    # 3. Initialize the record store
    try:
        config = load_config(base_path)
        existed = config.db_path.exists()
        with config.open_store(event_bus=EventBus()):
            pass
    except ShadowSyncError as e:
        fail(str(e))

    if existed:
        echo_normal(f" ⚠ Database exists: {config.db_path}", verbosity)
    else:
        echo_normal(f" ✓ Initialized database: {config.db_path}", verbosity)

    echo_quiet(click.style("✓ shadowsync initialized", fg="green", bold=True), verbosity)
