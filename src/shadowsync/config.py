"""
Configuration loading for shadowsync.

Reads `config.yaml` from the base directory:

    storage:
      db_path: shadow.sqlite
    kinds:
      source: [staff]
      mirror: [offices]
    relationships:
      - source: staff
        mirror: offices
    reconcile:
      page_size: 500
      fail_fast: true

Kinds named by a relationship are declared automatically.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .event_bus import EventBus
from .reconcile import DEFAULT_PAGE_SIZE
from .record_store import RecordStore
from .registry import RelationshipRegistry

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
DEFAULT_DB_FILENAME = "shadow.sqlite"

DEFAULT_CONFIG_TEMPLATE = """# shadowsync configuration

storage:
  db_path: shadow.sqlite

# Kinds known to the record store
kinds:
  source: []
  mirror: []

# Each relationship keeps one source kind and one mirror kind in sync
relationships: []
#  - source: staff
#    mirror: offices

reconcile:
  page_size: 500
  fail_fast: true
"""


@dataclass
class ShadowSyncConfig:
    """Settings read from config.yaml."""
    base_path: Path
    db_path: Path
    source_kinds: List[str] = field(default_factory=list)
    mirror_kinds: List[str] = field(default_factory=list)
    relationships: List[Tuple[str, str]] = field(default_factory=list)
    page_size: int = DEFAULT_PAGE_SIZE
    fail_fast: bool = True

    def open_store(self, event_bus: Optional[EventBus] = None) -> RecordStore:
        """Open the record store and declare the configured kinds."""
        store = RecordStore(self.db_path, event_bus=event_bus)
        store.register_kinds(source=self.source_kinds, mirror=self.mirror_kinds)
        return store

    def build_registry(self, store: RecordStore) -> RelationshipRegistry:
        """Create a registry with every configured relationship registered."""
        registry = RelationshipRegistry(store.sources, store.mirrors, store.associations, store.event_bus)
        for source_kind, mirror_kind in self.relationships:
            registry.register(source_kind, mirror_kind)
        return registry


def _string_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ConfigurationError(f"'{key}' must be a list of kind names")
    return list(value)


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return section


def parse_config(data: Optional[Dict[str, Any]], base_path: Path) -> ShadowSyncConfig:
    """
    Build a ShadowSyncConfig from parsed YAML.

    Raises:
        ConfigurationError: Missing or malformed values
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    storage = _section(data, "storage")
    db_path = Path(storage.get("db_path") or DEFAULT_DB_FILENAME).expanduser()
    if not db_path.is_absolute():
        db_path = base_path / db_path

    kinds = _section(data, "kinds")
    source_kinds = _string_list(kinds.get("source"), "kinds.source")
    mirror_kinds = _string_list(kinds.get("mirror"), "kinds.mirror")

    relationships = []
    for entry in data.get("relationships") or []:
        if not isinstance(entry, dict) or not entry.get("source") or not entry.get("mirror"):
            raise ConfigurationError("Each relationship needs 'source' and 'mirror' kinds")
        pair = (str(entry["source"]), str(entry["mirror"]))
        relationships.append(pair)
        if pair[0] not in source_kinds:
            source_kinds.append(pair[0])
        if pair[1] not in mirror_kinds:
            mirror_kinds.append(pair[1])

    reconcile = _section(data, "reconcile")
    page_size = reconcile.get("page_size", DEFAULT_PAGE_SIZE)
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ConfigurationError("reconcile.page_size must be a positive integer")
    fail_fast = reconcile.get("fail_fast", True)
    if not isinstance(fail_fast, bool):
        raise ConfigurationError("reconcile.fail_fast must be true or false")

    return ShadowSyncConfig(
        base_path=base_path,
        db_path=db_path,
        source_kinds=source_kinds,
        mirror_kinds=mirror_kinds,
        relationships=relationships,
        page_size=page_size,
        fail_fast=fail_fast,
    )


def load_config(base_path: Path) -> ShadowSyncConfig:
    """
    Load `config.yaml` from a base directory.

    Raises:
        ConfigurationError: File missing, unreadable, or invalid
    """
    base_path = Path(base_path)
    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    config = parse_config(data, base_path)
    logger.debug(f"Loaded configuration from {config_path}")
    return config


__all__ = [
    "ShadowSyncConfig",
    "load_config",
    "parse_config",
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG_TEMPLATE",
]
