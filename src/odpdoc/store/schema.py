"""SQLite schema and pragmas for the versioned record store."""

from __future__ import annotations

import sqlite3


PRAGMA_BUSY_TIMEOUT_MS = 5000


def apply_runtime_pragmas(connection: sqlite3.Connection) -> None:
    """Apply runtime pragmas for concurrent local imports."""

    connection.execute("PRAGMA journal_mode=WAL;")
    connection.execute(f"PRAGMA busy_timeout={PRAGMA_BUSY_TIMEOUT_MS};")
    connection.execute("PRAGMA synchronous=NORMAL;")
    connection.execute("PRAGMA foreign_keys=ON;")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create item, version and setup-element tables if missing."""

    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS items (
            id INTEGER PRIMARY KEY,
            kind TEXT NOT NULL CHECK(kind IN ('on','or','oc')),
            grp TEXT NOT NULL,
            entity_id INTEGER NOT NULL CHECK(entity_id > 0),
            title TEXT NOT NULL,
            latest_version INTEGER NOT NULL CHECK(latest_version > 0),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(kind, grp, entity_id)
        );

        CREATE TABLE IF NOT EXISTS item_versions (
            id INTEGER PRIMARY KEY,
            item_id INTEGER NOT NULL REFERENCES items(id) ON DELETE CASCADE,
            version INTEGER NOT NULL CHECK(version > 0),
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            created_by TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(item_id, version)
        );

        CREATE TABLE IF NOT EXISTS setup_elements (
            id INTEGER PRIMARY KEY,
            kind TEXT NOT NULL CHECK(kind IN ('stakeholder','data','service','document')),
            name TEXT NOT NULL,
            description TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(kind, name)
        );

        CREATE INDEX IF NOT EXISTS idx_items_scope ON items(grp, kind);
        CREATE INDEX IF NOT EXISTS idx_item_versions_item_id ON item_versions(item_id);
        CREATE INDEX IF NOT EXISTS idx_setup_elements_kind ON setup_elements(kind);
        """
    )
