"""
CRUD Operations for shadowsync records

This module implements the record repository contract for both collections
on top of SQLite:
- get / find_by_slug: read a record by ID or by (kind, slug)
- create / update / delete: validated writes that emit lifecycle events
- list_published: stable, paginated listing of a kind
- get_meta / set_meta / delete_meta: per-record metadata (never emits events)
- register_kind / kind_exists: the kinds known to this store
"""

import sqlite3
import uuid
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from .models import (
    SourceRecord,
    MirrorRecord,
    SOURCE_STATUSES,
    SLUG_PATTERN,
    slugify,
)
from .schema import init_database
from ..errors import ValidationError, NotFoundError, RepositoryError
from ..events import SourceUpsertedEvent, SourceDeletingEvent, MirrorCreatedEvent

logger = logging.getLogger(__name__)

Record = Union[SourceRecord, MirrorRecord]


@contextmanager
def _storage_errors(action: str, record_id: Optional[str] = None) -> Iterator[None]:
    """Translate sqlite3 failures into the shadowsync error taxonomy."""
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ValidationError(f"{action} rejected: {e}", record_id=record_id) from e
    except sqlite3.Error as e:
        raise RepositoryError(f"{action} failed: {e}", record_id=record_id) from e


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RecordCRUD:
    """
    Shared CRUD implementation for one record collection.

    Subclasses pick the table, the display field ("title" or "name"), and the
    events emitted on writes. Handles:
    - Payload validation (kind, display field, slug, status)
    - Unique slug per kind
    - Metadata rows that cascade with their record
    - Thread-safe writes through a connection-level lock
    """

    SIDE = ""
    TABLE = ""
    META_TABLE = ""
    NAME_FIELD = ""
    COLUMNS = ()

    def __init__(self,
                 db_path: Union[str, Path],
                 enable_wal: bool = True,
                 conn: Optional[sqlite3.Connection] = None,
                 event_bus=None):
        """
        Initialize record CRUD operations.

        Args:
            db_path: Path to SQLite database file (or ':memory:' for in-memory)
            enable_wal: Enable WAL mode for concurrent writes (default: True)
            conn: Optional shared connection (used by RecordStore)
            event_bus: Optional EventBus receiving lifecycle events
        """
        self.db_path = Path(db_path) if db_path != ':memory:' else db_path
        self.event_bus = event_bus
        self._owns_connection = conn is None
        self._db_lock = threading.Lock()

        if conn is not None:
            self._conn = conn
        else:
            if self.db_path != ':memory:':
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # isolation_level=None enables autocommit mode
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
                timeout=30.0
            )
            init_database(self._conn, enable_wal)

    # Kinds

    def register_kind(self, kind: str) -> None:
        """Declare a kind as known to this collection. Idempotent."""
        if not isinstance(kind, str) or not SLUG_PATTERN.match(kind.replace("_", "-")):
            raise ValidationError(f"Invalid kind name: {kind!r}")

        with self._db_lock, _storage_errors(f"register {self.SIDE} kind"):
            self._conn.execute(
                "INSERT OR IGNORE INTO record_kinds (kind, side) VALUES (?, ?)",
                (kind, self.SIDE),
            )

    def kind_exists(self, kind: str) -> bool:
        with _storage_errors(f"look up {self.SIDE} kind"):
            row = self._conn.execute(
                "SELECT 1 FROM record_kinds WHERE kind = ? AND side = ?",
                (kind, self.SIDE),
            ).fetchone()
        return row is not None

    def kinds(self) -> List[str]:
        with _storage_errors(f"list {self.SIDE} kinds"):
            rows = self._conn.execute(
                "SELECT kind FROM record_kinds WHERE side = ? ORDER BY kind",
                (self.SIDE,),
            ).fetchall()
        return [row[0] for row in rows]

    # Reads

    def get(self, record_id: Optional[str]) -> Optional[Record]:
        """
        Retrieve a record by ID.

        Returns:
            The record, or None if not found
        """
        if not record_id:
            return None

        with _storage_errors(f"get {self.SIDE} record", record_id):
            row = self._conn.execute(
                f"SELECT {', '.join(self.COLUMNS)} FROM {self.TABLE} WHERE id = ?",
                (record_id,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def find_by_slug(self, kind: str, slug: str) -> Optional[Record]:
        """Retrieve the record of a kind with the given slug, whatever its status."""
        with _storage_errors(f"find {self.SIDE} record by slug"):
            row = self._conn.execute(
                f"SELECT {', '.join(self.COLUMNS)} FROM {self.TABLE} WHERE kind = ? AND slug = ?",
                (kind, slug),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_published(self, kind: str, page: int = 1, page_size: int = 500) -> List[Record]:
        """
        List one page of the published records of a kind.

        Args:
            kind: Record kind
            page: 1-based page number
            page_size: Records per page

        Returns:
            Records in insertion order (stable across pages)
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        offset = (page - 1) * page_size
        with _storage_errors(f"list {self.SIDE} records"):
            rows = self._conn.execute(
                f"SELECT {', '.join(self.COLUMNS)} FROM {self.TABLE} "
                f"WHERE kind = ?{self._published_clause()} "
                f"ORDER BY rowid LIMIT ? OFFSET ?",
                (kind, page_size, offset),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self, kind: Optional[str] = None) -> int:
        """Count records, optionally restricted to one kind."""
        query = f"SELECT COUNT(*) FROM {self.TABLE}"
        params: tuple = ()
        if kind is not None:
            query += " WHERE kind = ?"
            params = (kind,)
        with _storage_errors(f"count {self.SIDE} records"):
            return self._conn.execute(query, params).fetchone()[0]

    # Writes

    def create(self, fields: Dict[str, Any], origin: Optional[str] = None) -> Record:
        """
        Create a record.

        Args:
            fields: kind, display field, optional slug (derived when missing)
            origin: Marker copied onto the emitted event

        Returns:
            The stored record

        Raises:
            ValidationError: Malformed payload or slug already used in the kind
        """
        values = self._validate(fields)
        record_id = str(uuid.uuid4())
        now = datetime.now().isoformat()

        columns = ["id"] + list(values) + ["created_at"]
        params = [record_id] + list(values.values()) + [now]
        if "updated_at" in self.COLUMNS:
            columns.append("updated_at")
            params.append(now)

        with self._db_lock, _storage_errors(f"create {self.SIDE} record"):
            self._conn.execute(
                f"INSERT INTO {self.TABLE} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                params,
            )

        record = self.get(record_id)
        logger.debug(f"Created {self.SIDE} record {record_id} ({record.kind}/{record.slug})")
        self._after_create(record, origin)
        return record

    def update(self, record_id: str, fields: Dict[str, Any], origin: Optional[str] = None) -> Record:
        """
        Update a record's fields.

        Raises:
            NotFoundError: No record with this ID
            ValidationError: Malformed payload or slug collision
        """
        existing = self.get(record_id)
        if existing is None:
            raise NotFoundError(f"{self.SIDE} record {record_id} not found", record_id=record_id)

        values = self._validate(fields, existing=existing)
        values.pop("kind", None)
        if "updated_at" in self.COLUMNS:
            values["updated_at"] = datetime.now().isoformat()

        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            with self._db_lock, _storage_errors(f"update {self.SIDE} record", record_id):
                cursor = self._conn.execute(
                    f"UPDATE {self.TABLE} SET {assignments} WHERE id = ?",
                    list(values.values()) + [record_id],
                )
            if cursor.rowcount == 0:
                raise NotFoundError(f"{self.SIDE} record {record_id} not found", record_id=record_id)

        record = self.get(record_id)
        self._after_update(record, origin)
        return record

    def delete(self, record_id: str, origin: Optional[str] = None) -> None:
        """
        Delete a record and its metadata.

        Raises:
            NotFoundError: No record with this ID
        """
        existing = self.get(record_id)
        if existing is None:
            raise NotFoundError(f"{self.SIDE} record {record_id} not found", record_id=record_id)

        self._before_delete(existing, origin)

        with self._db_lock, _storage_errors(f"delete {self.SIDE} record", record_id):
            cursor = self._conn.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (record_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"{self.SIDE} record {record_id} not found", record_id=record_id)
        logger.debug(f"Deleted {self.SIDE} record {record_id}")

    # Metadata

    def get_meta(self, record_id: str, key: str) -> Optional[str]:
        with _storage_errors(f"read {self.SIDE} metadata", record_id):
            row = self._conn.execute(
                f"SELECT meta_value FROM {self.META_TABLE} WHERE record_id = ? AND meta_key = ?",
                (record_id, key),
            ).fetchone()
        return row[0] if row and row[0] else None

    def set_meta(self, record_id: str, key: str, value: str) -> None:
        """
        Write a metadata value, replacing any previous one.

        Raises:
            NotFoundError: No record with this ID
        """
        with self._db_lock, _storage_errors(f"write {self.SIDE} metadata", record_id):
            exists = self._conn.execute(
                f"SELECT 1 FROM {self.TABLE} WHERE id = ?", (record_id,)
            ).fetchone()
            if exists is None:
                raise NotFoundError(f"{self.SIDE} record {record_id} not found", record_id=record_id)
            self._conn.execute(
                f"INSERT OR REPLACE INTO {self.META_TABLE} (record_id, meta_key, meta_value) "
                f"VALUES (?, ?, ?)",
                (record_id, key, value),
            )

    def delete_meta(self, record_id: str, key: str) -> bool:
        """Remove a metadata value. Returns False if there was none."""
        with self._db_lock, _storage_errors(f"delete {self.SIDE} metadata", record_id):
            cursor = self._conn.execute(
                f"DELETE FROM {self.META_TABLE} WHERE record_id = ? AND meta_key = ?",
                (record_id, key),
            )
        return cursor.rowcount > 0

    def find_ids_by_meta(self, key: str, value: str) -> List[str]:
        """IDs of the records whose metadata `key` equals `value`."""
        with _storage_errors(f"search {self.SIDE} metadata"):
            rows = self._conn.execute(
                f"SELECT record_id FROM {self.META_TABLE} WHERE meta_key = ? AND meta_value = ?",
                (key, value),
            ).fetchall()
        return [row[0] for row in rows]

    # Validation

    def _validate(self, fields: Dict[str, Any], existing: Optional[Record] = None) -> Dict[str, Any]:
        """Check a create/update payload and return the column values to write."""
        if not isinstance(fields, dict):
            raise ValidationError(f"{self.SIDE} fields must be a mapping")

        allowed = {"kind", self.NAME_FIELD, "slug"} | self._extra_fields()
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Unknown {self.SIDE} fields: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {}

        if existing is None:
            kind = fields.get("kind")
            if not kind or not self.kind_exists(kind):
                raise ValidationError(f"Unknown {self.SIDE} kind: {kind!r}")
            values["kind"] = kind
        elif "kind" in fields and fields["kind"] != existing.kind:
            raise ValidationError(f"Cannot change kind of {self.SIDE} record {existing.id}")

        if existing is None or self.NAME_FIELD in fields:
            name = fields.get(self.NAME_FIELD)
            if not isinstance(name, str) or not name.strip():
                raise ValidationError(f"{self.SIDE} {self.NAME_FIELD} must be a non-empty string")
            values[self.NAME_FIELD] = name.strip()

        if "slug" in fields or existing is None:
            slug = fields.get("slug")
            if slug is None and existing is None:
                slug = slugify(values[self.NAME_FIELD])
            if not isinstance(slug, str) or not SLUG_PATTERN.match(slug):
                raise ValidationError(f"Malformed slug: {slug!r}")
            values["slug"] = slug

        values.update(self._validate_extra(fields, existing))
        return values

    def _extra_fields(self) -> set:
        return set()

    def _validate_extra(self, fields: Dict[str, Any], existing: Optional[Record]) -> Dict[str, Any]:
        return {}

    # Hooks

    def _publish(self, event) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _published_clause(self) -> str:
        return ""

    def _after_create(self, record: Record, origin: Optional[str]) -> None:
        pass

    def _after_update(self, record: Record, origin: Optional[str]) -> None:
        pass

    def _before_delete(self, record: Record, origin: Optional[str]) -> None:
        pass

    def _row_to_record(self, row) -> Record:
        raise NotImplementedError

    def close(self) -> None:
        """Close connection if this object owns it."""
        if self._owns_connection and self._conn:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SourceRepository(RecordCRUD):
    """Repository for source records. Emits source.upserted and source.deleting."""

    SIDE = "source"
    TABLE = "source_records"
    META_TABLE = "source_meta"
    NAME_FIELD = "title"
    COLUMNS = ("id", "kind", "title", "slug", "status", "created_at", "updated_at")

    def _extra_fields(self) -> set:
        return {"status"}

    def _validate_extra(self, fields: Dict[str, Any], existing: Optional[SourceRecord]) -> Dict[str, Any]:
        if existing is not None and "status" not in fields:
            return {}
        status = fields.get("status", "draft")
        if status not in SOURCE_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}. Must be one of: {sorted(SOURCE_STATUSES)}")
        return {"status": status}

    def _published_clause(self) -> str:
        return " AND status = 'published'"

    def _row_to_record(self, row) -> SourceRecord:
        return SourceRecord(
            id=row[0],
            kind=row[1],
            title=row[2],
            slug=row[3],
            status=row[4],
            created_at=_parse_timestamp(row[5]),
            updated_at=_parse_timestamp(row[6]),
        )

    def _after_create(self, record: SourceRecord, origin: Optional[str]) -> None:
        self._publish(SourceUpsertedEvent(record_id=record.id, kind=record.kind, created=True, origin=origin))

    def _after_update(self, record: SourceRecord, origin: Optional[str]) -> None:
        self._publish(SourceUpsertedEvent(record_id=record.id, kind=record.kind, origin=origin))

    def _before_delete(self, record: SourceRecord, origin: Optional[str]) -> None:
        self._publish(SourceDeletingEvent(record_id=record.id, kind=record.kind, origin=origin))


class MirrorRepository(RecordCRUD):
    """Repository for mirror records. Emits mirror.created."""

    SIDE = "mirror"
    TABLE = "mirror_records"
    META_TABLE = "mirror_meta"
    NAME_FIELD = "name"
    COLUMNS = ("id", "kind", "name", "slug", "created_at")

    def _row_to_record(self, row) -> MirrorRecord:
        return MirrorRecord(
            id=row[0],
            kind=row[1],
            name=row[2],
            slug=row[3],
            created_at=_parse_timestamp(row[4]),
        )

    def _after_create(self, record: MirrorRecord, origin: Optional[str]) -> None:
        self._publish(MirrorCreatedEvent(record_id=record.id, kind=record.kind, origin=origin))
