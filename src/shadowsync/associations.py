"""
Association Store - source <-> mirror cross references.

The link between a source record and its mirror is not a separate entity: it
is stored as metadata on both records (`shadow_mirror_id` on the source,
`shadow_source_id` on the mirror), so it can be resolved from either side in
one lookup and disappears with whichever record holds it.

Metadata writes never emit events, so updating a link cannot re-enter the
sync handlers.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterator, List, Optional

from .errors import NotFoundError
from .storage.models import Association, MirrorRecord, SourceRecord, in_sync

logger = logging.getLogger(__name__)

SOURCE_META_KEY = "shadow_mirror_id"
MIRROR_META_KEY = "shadow_source_id"


@dataclass
class LinkCheck:
    """Status of one record's association, as reported by `check`."""
    side: str  # "source" | "mirror"
    record_id: str
    counterpart_id: Optional[str] = None
    problems: List[str] = field(default_factory=list)

    @property
    def intact(self) -> bool:
        return not self.problems

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "side": self.side,
            "record_id": self.record_id,
            "counterpart_id": self.counterpart_id,
            "intact": self.intact,
            "problems": list(self.problems),
        }


class KeyedLock:
    """
    Reentrant mutual exclusion per key.

    Locks are created on demand and dropped once no thread holds or waits
    for them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._users: Dict[Hashable, int] = {}

    @contextmanager
    def __call__(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class AssociationStore:
    """
    Key-value layer mapping source IDs to mirror IDs and back.

    Usage:
        links = AssociationStore(sources, mirrors)
        links.set_link(source.id, mirror.id)
        links.get_mirror_id(source.id)    # -> mirror.id
        links.get_mirror(source.id, "offices")  # -> MirrorRecord
        links.clear_link(source_id=source.id)
    """

    def __init__(self, sources, mirrors):
        """
        Args:
            sources: SourceRepository holding source metadata
            mirrors: MirrorRepository holding mirror metadata
        """
        self.sources = sources
        self.mirrors = mirrors
        self.locked = KeyedLock()

    def get_mirror_id(self, source_id: str) -> Optional[str]:
        return self.sources.get_meta(source_id, SOURCE_META_KEY)

    def get_source_id(self, mirror_id: str) -> Optional[str]:
        return self.mirrors.get_meta(mirror_id, MIRROR_META_KEY)

    def get_mirror(self, source_id: str, mirror_kind: Optional[str] = None) -> Optional[MirrorRecord]:
        """
        Return the mirror record a source links to.

        None when there is no link, the linked mirror no longer exists, or it
        is not of mirror_kind.
        """
        mirror_id = self.get_mirror_id(source_id)
        if mirror_id is None:
            return None
        mirror = self.mirrors.get(mirror_id)
        if mirror is None or (mirror_kind is not None and mirror.kind != mirror_kind):
            return None
        return mirror

    def get_source(self, mirror_id: str, source_kind: Optional[str] = None) -> Optional[SourceRecord]:
        """Return the source record a mirror links to, like get_mirror."""
        source_id = self.get_source_id(mirror_id)
        if source_id is None:
            return None
        source = self.sources.get(source_id)
        if source is None or (source_kind is not None and source.kind != source_kind):
            return None
        return source

    def get_link(self, source_id: Optional[str] = None, mirror_id: Optional[str] = None) -> Optional[Association]:
        """
        Return the association for either side, or None.

        An association is only reported when both sides point at each other.
        """
        if source_id is not None:
            mirror_id = self.get_mirror_id(source_id)
            if mirror_id and self.get_source_id(mirror_id) == source_id:
                return Association(source_id=source_id, mirror_id=mirror_id)
            return None
        if mirror_id is not None:
            source_id = self.get_source_id(mirror_id)
            if source_id and self.get_mirror_id(source_id) == mirror_id:
                return Association(source_id=source_id, mirror_id=mirror_id)
            return None
        raise ValueError("get_link requires source_id or mirror_id")

    def set_link(self, source_id: str, mirror_id: str) -> Association:
        """
        Link a source record and a mirror record, both directions.

        Idempotent. A previous partner of either record loses its
        back-pointer if it still points here.
        """
        previous_mirror = self.get_mirror_id(source_id)
        if previous_mirror and previous_mirror != mirror_id:
            if self.get_source_id(previous_mirror) == source_id:
                self.mirrors.delete_meta(previous_mirror, MIRROR_META_KEY)

        previous_source = self.get_source_id(mirror_id)
        if previous_source and previous_source != source_id:
            if self.get_mirror_id(previous_source) == mirror_id:
                self.sources.delete_meta(previous_source, SOURCE_META_KEY)

        self.sources.set_meta(source_id, SOURCE_META_KEY, mirror_id)
        self.mirrors.set_meta(mirror_id, MIRROR_META_KEY, source_id)
        logger.debug(f"Linked source {source_id} <-> mirror {mirror_id}")
        return Association(source_id=source_id, mirror_id=mirror_id)

    def clear_link(self, source_id: Optional[str] = None, mirror_id: Optional[str] = None) -> int:
        """
        Remove the link identified by a source ID, a mirror ID, or both.

        Clears the supplied record's metadata and any metadata on the other
        side that still references it. A missing link is not an error.

        Returns:
            Number of metadata values removed
        """
        if source_id is None and mirror_id is None:
            raise ValueError("clear_link requires source_id or mirror_id")

        removed = 0
        if source_id is not None:
            removed += self.sources.delete_meta(source_id, SOURCE_META_KEY)
            for other in self.mirrors.find_ids_by_meta(MIRROR_META_KEY, source_id):
                removed += self.mirrors.delete_meta(other, MIRROR_META_KEY)
        if mirror_id is not None:
            removed += self.mirrors.delete_meta(mirror_id, MIRROR_META_KEY)
            for other in self.sources.find_ids_by_meta(SOURCE_META_KEY, mirror_id):
                removed += self.sources.delete_meta(other, SOURCE_META_KEY)

        if removed:
            logger.debug(f"Cleared link (source={source_id}, mirror={mirror_id}): {removed} value(s)")
        return removed

    def check_source(self, source_id: str, mirror_kind: Optional[str] = None) -> LinkCheck:
        """
        Report whether a source record's association is intact. Never repairs.

        Raises:
            NotFoundError: The source record does not exist
        """
        source = self.sources.get(source_id)
        if source is None:
            raise NotFoundError(f"Source record not found: {source_id}", record_id=source_id)

        check = LinkCheck(side="source", record_id=source_id, counterpart_id=self.get_mirror_id(source_id))
        if check.counterpart_id is None:
            check.problems.append("no associated mirror")
            return check

        mirror = self.mirrors.get(check.counterpart_id)
        if mirror is None:
            check.problems.append(f"associated mirror {check.counterpart_id} does not exist")
            return check
        if mirror_kind is not None and mirror.kind != mirror_kind:
            check.problems.append(f"associated mirror is a {mirror.kind}, not a {mirror_kind}")
        if self.get_source_id(mirror.id) != source_id:
            check.problems.append("mirror does not link back to this source")
        if not in_sync(source, mirror):
            check.problems.append("name or slug differs from the mirror")
        return check

    def check_mirror(self, mirror_id: str, mirror_kind: Optional[str] = None) -> LinkCheck:
        """
        Report whether a mirror record's association is intact. Never repairs.

        Raises:
            NotFoundError: The mirror record does not exist, or is not of mirror_kind
        """
        mirror = self.mirrors.get(mirror_id)
        if mirror is None or (mirror_kind is not None and mirror.kind != mirror_kind):
            raise NotFoundError(f"Mirror record not found: {mirror_id}", record_id=mirror_id)

        check = LinkCheck(side="mirror", record_id=mirror_id, counterpart_id=self.get_source_id(mirror_id))
        if check.counterpart_id is None:
            check.problems.append("no associated source")
            return check

        source = self.sources.get(check.counterpart_id)
        if source is None:
            check.problems.append(f"associated source {check.counterpart_id} does not exist")
            return check
        if self.get_mirror_id(source.id) != mirror_id:
            check.problems.append("source does not link back to this mirror")
        if not in_sync(source, mirror):
            check.problems.append("name or slug differs from the source")
        return check


__all__ = ["AssociationStore", "KeyedLock", "LinkCheck", "SOURCE_META_KEY", "MIRROR_META_KEY"]
