"""
Event type definitions for shadowsync hook dispatch.

This module defines the typed events the record repositories emit:
- SourceUpsertedEvent: after a source record is created or updated
- SourceDeletingEvent: before a source record is removed
- MirrorCreatedEvent: after a mirror record is created

Events carry only the record identity. Handlers always re-fetch the
authoritative record instead of trusting event payloads.

Mutations issued by shadowsync itself are tagged with origin=SYNC_ORIGIN so
that the handlers can tell their own writes apart from external ones.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any


SYNC_ORIGIN = "shadowsync"

SOURCE_UPSERTED = "source.upserted"
SOURCE_DELETING = "source.deleting"
MIRROR_CREATED = "mirror.created"


@dataclass
class SourceUpsertedEvent:
    """Event emitted when a source record is created or updated."""
    record_id: str
    kind: str
    created: bool = False
    origin: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = SOURCE_UPSERTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type,
            "record_id": self.record_id,
            "kind": self.kind,
            "created": self.created,
            "origin": self.origin,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class SourceDeletingEvent:
    """Event emitted before a source record is removed."""
    record_id: str
    kind: str
    origin: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = SOURCE_DELETING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type,
            "record_id": self.record_id,
            "kind": self.kind,
            "origin": self.origin,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class MirrorCreatedEvent:
    """Event emitted when a mirror record is created."""
    record_id: str
    kind: str
    origin: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = MIRROR_CREATED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type,
            "record_id": self.record_id,
            "kind": self.kind,
            "origin": self.origin,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


__all__ = [
    "SYNC_ORIGIN",
    "SOURCE_UPSERTED",
    "SOURCE_DELETING",
    "MIRROR_CREATED",
    "SourceUpsertedEvent",
    "SourceDeletingEvent",
    "MirrorCreatedEvent",
]
