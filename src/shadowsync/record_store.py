"""
RecordStore - facade over the SQLite record repositories.

Opens a single connection and shares it between the source repository, the
mirror repository and the association store, so ':memory:' databases work
and every component sees the same data.

Usage:
    with RecordStore(":memory:") as store:
        store.register_kinds(source=["staff"], mirror=["offices"])
        jane = store.sources.create({"kind": "staff", "title": "Jane Doe",
                                     "status": "published"})
        store.associations.get_mirror_id(jane.id)
"""

import sqlite3
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from .storage.crud import SourceRepository, MirrorRepository
from .storage.schema import init_database
from .associations import AssociationStore
from .event_bus import EventBus, get_event_bus

logger = logging.getLogger(__name__)


class RecordStore:
    """Shared-connection container for both repositories and their links."""

    def __init__(self,
                 db_path: Union[str, Path],
                 event_bus: Optional[EventBus] = None,
                 enable_wal: bool = True):
        """
        Args:
            db_path: Path to SQLite database file (or ':memory:')
            event_bus: Bus receiving record lifecycle events
                       (defaults to the process-wide bus)
            enable_wal: Enable WAL mode (ignored for ':memory:')
        """
        self.db_path = Path(db_path) if db_path != ':memory:' else db_path
        if self.db_path != ':memory:':
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            isolation_level=None,
            timeout=30.0
        )
        init_database(self._conn, enable_wal and self.db_path != ':memory:')

        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self.sources = SourceRepository(db_path, conn=self._conn, event_bus=self.event_bus)
        self.mirrors = MirrorRepository(db_path, conn=self._conn, event_bus=self.event_bus)
        self.associations = AssociationStore(self.sources, self.mirrors)

        logger.debug(f"Opened record store at {self.db_path}")

    def register_kinds(self, source: Iterable[str] = (), mirror: Iterable[str] = ()) -> None:
        """Declare the source and mirror kinds known to this store."""
        for kind in source:
            self.sources.register_kind(kind)
        for kind in mirror:
            self.mirrors.register_kind(kind)

    def close(self) -> None:
        """Close the shared connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
