"""
Database schema management for the shadowsync record store.

This module handles:
- Table creation (record kinds, source records, mirror records)
- Metadata tables holding the association keys for each side
- Index creation for slug lookups and paginated listing
- WAL mode configuration
- Foreign key constraints (metadata cascades with its record)
"""

import sqlite3


def init_database(conn: sqlite3.Connection, enable_wal: bool = True) -> None:
    """
    Initialize database schema with indexes.

    Args:
        conn: SQLite connection object
        enable_wal: Enable WAL mode for concurrent writes (default: True)
    """
    if enable_wal:
        conn.execute("PRAGMA journal_mode=WAL")

    conn.execute("PRAGMA foreign_keys=ON")

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS record_kinds (
            kind TEXT NOT NULL,
            side TEXT NOT NULL CHECK(side IN ('source','mirror')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (kind, side)
        );

        CREATE TABLE IF NOT EXISTS source_records (
            id TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            title TEXT NOT NULL,
            slug TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('published','draft','pending','private','trash')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP,
            UNIQUE (kind, slug)
        );

        CREATE TABLE IF NOT EXISTS mirror_records (
            id TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            name TEXT NOT NULL,
            slug TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (kind, slug)
        );

        CREATE TABLE IF NOT EXISTS source_meta (
            record_id TEXT NOT NULL,
            meta_key TEXT NOT NULL,
            meta_value TEXT,
            PRIMARY KEY (record_id, meta_key),
            FOREIGN KEY (record_id) REFERENCES source_records(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS mirror_meta (
            record_id TEXT NOT NULL,
            meta_key TEXT NOT NULL,
            meta_value TEXT,
            PRIMARY KEY (record_id, meta_key),
            FOREIGN KEY (record_id) REFERENCES mirror_records(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_source_records_kind_status ON source_records(kind, status);
        CREATE INDEX IF NOT EXISTS idx_mirror_records_kind ON mirror_records(kind);
        CREATE INDEX IF NOT EXISTS idx_source_meta_value ON source_meta(meta_key, meta_value);
        CREATE INDEX IF NOT EXISTS idx_mirror_meta_value ON mirror_meta(meta_key, meta_value);
    """)

    conn.commit()
