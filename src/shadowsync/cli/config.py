"""Configuration management commands for shadowsync CLI."""
import click
import yaml

from ..config import CONFIG_FILENAME, parse_config
from ..errors import ConfigurationError

# Local CLI imports
from .common import get_base_path, echo_quiet, echo_normal, fail


@click.group()
def config_group():
    """Configuration management commands."""
    pass


def _config_path(ctx):
    config_path = get_base_path(ctx.obj.get('data_dir')) / CONFIG_FILENAME
    if not config_path.exists():
        fail("shadowsync not initialized. Run 'shadowsync init' first.")
    return config_path


def _read(config_path):
    try:
        return yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        fail(f"Invalid YAML in {config_path}: {e}")


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    VALUE is parsed as YAML, so numbers, booleans and lists keep their type.

    \b
    Examples:
        shadowsync config set reconcile.page_size 200
        shadowsync config set reconcile.fail_fast false
        shadowsync config set kinds.source "[staff, projects]"
    """
    config_path = _config_path(ctx)
    verbosity = ctx.obj.get('verbosity', 1)
    config_data = _read(config_path)

    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed = value

    # Parse nested keys (e.g., 'reconcile.page_size')
    keys = key.split('.')
    current = config_data
    for k in keys[:-1]:
        if not isinstance(current.get(k), dict):
            current[k] = {}
        current = current[k]
    current[keys[-1]] = parsed

    try:
        parse_config(config_data, config_path.parent)
    except ConfigurationError as e:
        fail(f"Refusing to set {key}: {e}")

    config_path.write_text(yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False))
    echo_normal(click.style(f"✓ Set {key} = {parsed}", fg="green"), verbosity)


@config_group.command('get')
@click.argument('key')
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value.

    \b
    Examples:
        shadowsync config get reconcile.page_size
        shadowsync config get relationships
    """
    config_path = _config_path(ctx)
    verbosity = ctx.obj.get('verbosity', 1)

    current = _read(config_path)
    for k in key.split('.'):
        if not isinstance(current, dict) or k not in current:
            echo_quiet(click.style(f"Key '{key}' not found", fg="yellow"), verbosity)
            ctx.exit(1)
        current = current[k]

    if isinstance(current, (dict, list)):
        echo_quiet(yaml.safe_dump(current, default_flow_style=False, sort_keys=False).rstrip(), verbosity)
    else:
        echo_quiet(str(current), verbosity)


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display full configuration."""
    config_path = _config_path(ctx)
    verbosity = ctx.obj.get('verbosity', 1)

    content = config_path.read_text()
    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(content, verbosity)
