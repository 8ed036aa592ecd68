"""
Sync trigger handlers.

Each configured relationship owns three handler objects, subscribed to the
event bus by the RelationshipRegistry:

- SourceUpsertHandler  (source.upserted): create or refresh the mirror
- SourceDeleteHandler  (source.deleting): delete the mirror and the link
- MirrorCreateHandler  (mirror.created):  originate a source from a mirror

Every handler re-fetches the authoritative record, filters on the
relationship's kinds, and issues at most one record mutation. Writes issued
here are tagged with SYNC_ORIGIN so the handlers ignore their own echoes.
Nothing is retried: a failed mutation propagates to whoever wrote the
record, and the next event or reconciliation pass repairs the drift.

Usage:
    handler = SourceUpsertHandler(Relationship("staff", "offices"),
                                  sources, mirrors, associations)
    bus.subscribe(handler.event_type, handler)
"""

import logging
from enum import Enum
from typing import Any, Optional

from .errors import NotFoundError
from .events import SYNC_ORIGIN, SOURCE_UPSERTED, SOURCE_DELETING, MIRROR_CREATED
from .storage.models import Relationship, MirrorRecord, SourceRecord, PUBLISHED, in_sync

logger = logging.getLogger(__name__)


class HandlerOutcome(str, Enum):
    """What a handler invocation did."""
    NOOP = "noop"
    CREATED = "created"
    UPDATED = "updated"
    LINKED = "linked"
    DELETED = "deleted"


class SyncHandler:
    """
    Base class for relationship-scoped handlers.

    Handlers compare equal by (class, relationship), so subscribing a second
    handler for the same relationship is a no-op on the event bus.
    """

    event_type = ""

    def __init__(self, relationship: Relationship, sources, mirrors, associations):
        self.relationship = relationship
        self.sources = sources
        self.mirrors = mirrors
        self.associations = associations

    def __call__(self, event: Any) -> HandlerOutcome:
        if getattr(event, "origin", None) == SYNC_ORIGIN:
            return HandlerOutcome.NOOP
        outcome = self.handle(event.record_id)
        logger.debug(f"{type(self).__name__}[{self.relationship}] {event.record_id}: {outcome.value}")
        return outcome

    def handle(self, record_id: str) -> HandlerOutcome:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.relationship == other.relationship

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.relationship))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.relationship})"


class SourceUpsertHandler(SyncHandler):
    """Keeps the mirror of a published source record in step with it."""

    event_type = SOURCE_UPSERTED

    def handle(self, record_id: str) -> HandlerOutcome:
        with self.associations.locked(("source", record_id)):
            source = self.sources.get(record_id)
            if source is None or source.kind != self.relationship.source_kind:
                return HandlerOutcome.NOOP
            if source.status != PUBLISHED:
                return HandlerOutcome.NOOP

            mirror = self.associations.get_mirror(source.id, self.relationship.mirror_kind)

            if mirror is None:
                adopted = self._unlinked_mirror_with_slug(source)
                if adopted is None:
                    return self._create_mirror(source)
                self.associations.set_link(source.id, adopted.id)
                if in_sync(source, adopted):
                    logger.info(f"Adopted mirror {adopted.id} for source {source.id}")
                    return HandlerOutcome.LINKED
                mirror = adopted

            # Re-entrancy guard: an in-sync pair needs no write
            if in_sync(source, mirror):
                return HandlerOutcome.NOOP

            try:
                self.mirrors.update(mirror.id, {"name": source.title, "slug": source.slug}, origin=SYNC_ORIGIN)
            except NotFoundError:
                logger.debug(f"Mirror {mirror.id} vanished before update")
                return HandlerOutcome.NOOP
            logger.info(f"Updated mirror {mirror.id} from source {source.id}")
            return HandlerOutcome.UPDATED

    def _create_mirror(self, source: SourceRecord) -> HandlerOutcome:
        mirror = self.mirrors.create(
            {"kind": self.relationship.mirror_kind, "name": source.title, "slug": source.slug},
            origin=SYNC_ORIGIN,
        )
        self.associations.set_link(source.id, mirror.id)
        logger.info(f"Created mirror {mirror.id} for source {source.id}")
        return HandlerOutcome.CREATED

    def _unlinked_mirror_with_slug(self, source: SourceRecord) -> Optional[MirrorRecord]:
        """A same-slug mirror whose recorded source is missing or is this source."""
        mirror = self.mirrors.find_by_slug(self.relationship.mirror_kind, source.slug)
        if mirror is None:
            return None
        linked_source = self.associations.get_source_id(mirror.id)
        if linked_source in (None, source.id) or self.sources.get(linked_source) is None:
            return mirror
        return None


class SourceDeleteHandler(SyncHandler):
    """Removes the mirror of a source record that is about to be deleted."""

    event_type = SOURCE_DELETING

    def handle(self, record_id: str) -> HandlerOutcome:
        with self.associations.locked(("source", record_id)):
            source = self.sources.get(record_id)
            if source is not None and source.kind != self.relationship.source_kind:
                return HandlerOutcome.NOOP

            mirror = self.associations.get_mirror(record_id, self.relationship.mirror_kind)
            if mirror is None:
                return HandlerOutcome.NOOP

            try:
                self.mirrors.delete(mirror.id, origin=SYNC_ORIGIN)
            except NotFoundError:
                logger.debug(f"Mirror {mirror.id} already deleted")
                return HandlerOutcome.NOOP

            self.associations.clear_link(source_id=record_id, mirror_id=mirror.id)
            logger.info(f"Deleted mirror {mirror.id} of source {record_id}")
            return HandlerOutcome.DELETED


class MirrorCreateHandler(SyncHandler):
    """Originates a published source record for a mirror created directly."""

    event_type = MIRROR_CREATED

    def handle(self, record_id: str) -> HandlerOutcome:
        with self.associations.locked(("mirror", record_id)):
            mirror = self.mirrors.get(record_id)
            if mirror is None or mirror.kind != self.relationship.mirror_kind:
                return HandlerOutcome.NOOP

            # Matched by slug, not by link: a new mirror has no link yet.
            # First match wins; ties across kinds are not resolved.
            source = self.sources.find_by_slug(self.relationship.source_kind, mirror.slug)

            if source is None:
                source = self.sources.create(
                    {
                        "kind": self.relationship.source_kind,
                        "title": mirror.name,
                        "slug": mirror.slug,
                        "status": PUBLISHED,
                    },
                    origin=SYNC_ORIGIN,
                )
                self.associations.set_link(source.id, mirror.id)
                logger.info(f"Created source {source.id} for mirror {mirror.id}")
                return HandlerOutcome.CREATED

            # A link to a mirror that no longer exists counts as no link
            if self.associations.get_mirror(source.id, self.relationship.mirror_kind) is None:
                self.associations.set_link(source.id, mirror.id)
                logger.info(f"Linked existing source {source.id} to mirror {mirror.id}")
                return HandlerOutcome.LINKED

            return HandlerOutcome.NOOP


HANDLER_CLASSES = (SourceUpsertHandler, SourceDeleteHandler, MirrorCreateHandler)


__all__ = [
    "HandlerOutcome",
    "SyncHandler",
    "SourceUpsertHandler",
    "SourceDeleteHandler",
    "MirrorCreateHandler",
    "HANDLER_CLASSES",
]
