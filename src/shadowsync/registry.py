"""
Relationship Registry - the configured (source kind, mirror kind) pairs.

One explicit registry instance is built at startup and handed to whatever
wires the event bus; handlers never look it up globally. Relationships are
re-declared on every process start and are never persisted.

Usage:
    registry = RelationshipRegistry(store.sources, store.mirrors,
                                    store.associations, store.event_bus)
    registry.register("staff", "offices")
    engine = registry.engine("staff", "offices", page_size=200)
"""

import logging
from threading import Lock
from typing import Dict, List, Tuple

from .errors import ConfigurationError
from .handlers import HANDLER_CLASSES, SyncHandler
from .reconcile import ReconciliationEngine
from .storage.models import Relationship

logger = logging.getLogger(__name__)


class RelationshipRegistry:
    """
    Process-wide table of relationships and their subscribed handlers.

    A kind may belong to at most one relationship: the association metadata
    holds a single counterpart ID per record.
    """

    def __init__(self, sources, mirrors, associations, event_bus):
        self.sources = sources
        self.mirrors = mirrors
        self.associations = associations
        self.event_bus = event_bus
        self._relationships: Dict[Tuple[str, str], Relationship] = {}
        self._handlers: Dict[Relationship, List[SyncHandler]] = {}
        self._lock = Lock()

    def register(self, source_kind: str, mirror_kind: str) -> Relationship:
        """
        Register a relationship and subscribe its three handlers.

        Re-registering the same pair is a no-op.

        Raises:
            ConfigurationError: Unknown kind, or a kind already bound to
                                a different partner
        """
        if not self.sources.kind_exists(source_kind):
            raise ConfigurationError(f"Unknown source kind: {source_kind}")
        if not self.mirrors.kind_exists(mirror_kind):
            raise ConfigurationError(f"Unknown mirror kind: {mirror_kind}")

        with self._lock:
            key = (source_kind, mirror_kind)
            if key in self._relationships:
                return self._relationships[key]

            for existing in self._relationships.values():
                if existing.source_kind == source_kind or existing.mirror_kind == mirror_kind:
                    raise ConfigurationError(
                        f"Cannot register {source_kind} -> {mirror_kind}: "
                        f"already bound by {existing}"
                    )

            relationship = Relationship(source_kind=source_kind, mirror_kind=mirror_kind)
            handlers = [
                handler_class(relationship, self.sources, self.mirrors, self.associations)
                for handler_class in HANDLER_CLASSES
            ]
            for handler in handlers:
                self.event_bus.subscribe(handler.event_type, handler)

            self._relationships[key] = relationship
            self._handlers[relationship] = handlers

        logger.info(f"Registered relationship {relationship}")
        return relationship

    def unregister(self, source_kind: str, mirror_kind: str) -> bool:
        """Unsubscribe a relationship's handlers. Returns False if it was not registered."""
        with self._lock:
            relationship = self._relationships.pop((source_kind, mirror_kind), None)
            if relationship is None:
                return False
            for handler in self._handlers.pop(relationship):
                self.event_bus.unsubscribe(handler.event_type, handler)

        logger.info(f"Unregistered relationship {relationship}")
        return True

    def get(self, source_kind: str, mirror_kind: str) -> Relationship:
        """
        Raises:
            ConfigurationError: The pair is not registered
        """
        try:
            return self._relationships[(source_kind, mirror_kind)]
        except KeyError:
            raise ConfigurationError(f"Relationship {source_kind} -> {mirror_kind} is not registered") from None

    def relationships(self) -> List[Relationship]:
        with self._lock:
            return list(self._relationships.values())

    def handlers(self, relationship: Relationship) -> List[SyncHandler]:
        with self._lock:
            return list(self._handlers.get(relationship, []))

    def engine(self, source_kind: str, mirror_kind: str, **options) -> ReconciliationEngine:
        """Build a ReconciliationEngine for a registered relationship."""
        relationship = self.get(source_kind, mirror_kind)
        return ReconciliationEngine(relationship, self.sources, self.mirrors, self.associations, **options)

    def __contains__(self, pair: Tuple[str, str]) -> bool:
        return tuple(pair) in self._relationships

    def __len__(self) -> int:
        return len(self._relationships)


__all__ = ["RelationshipRegistry"]
