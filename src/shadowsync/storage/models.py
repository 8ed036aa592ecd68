"""
Data models for shadowsync storage.

This module contains the dataclasses for the two record collections kept in
sync (sources and their mirrors), the relationship that pairs two kinds, and
the association linking one source record to one mirror record.
"""

import re
import unicodedata
from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass


PUBLISHED = "published"
SOURCE_STATUSES = {"published", "draft", "pending", "private", "trash"}

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


@dataclass
class SourceRecord:
    """An item of the primary kind."""
    id: str
    kind: str
    title: str
    slug: str
    status: str = "draft"  # published | draft | pending | private | trash
    created_at: datetime = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "slug": self.slug,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class MirrorRecord:
    """A lightweight proxy entry of the secondary kind."""
    id: str
    kind: str
    name: str
    slug: str
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "slug": self.slug,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class Relationship:
    """A configured (source kind, mirror kind) pair. Never persisted."""
    source_kind: str
    mirror_kind: str

    def __str__(self) -> str:
        return f"{self.source_kind} -> {self.mirror_kind}"


@dataclass(frozen=True)
class Association:
    """Cross-reference between one source record and one mirror record."""
    source_id: str
    mirror_id: str


def in_sync(source: SourceRecord, mirror: MirrorRecord) -> bool:
    """Return True when the mirror carries the source's identity fields."""
    return source.title == mirror.name and source.slug == mirror.slug


def slugify(text: str) -> str:
    """
    Derive a slug from a display name.

    "Jane R. Doe" -> "jane-r-doe". Returns an empty string when nothing
    usable remains.
    """
    normalized = unicodedata.normalize("NFKD", text or "")
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    # Drop apostrophes so "O'Brien" becomes "obrien", not "o-brien"
    ascii_text = re.sub(r"['’]", "", ascii_text)
    return re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")
