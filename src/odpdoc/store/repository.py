"""Versioned record store over SQLite with explicit transaction scoping."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Iterator

from odpdoc.model.entities import DraftingGroup, EntityIdentity, EntityKind, SetupKind
from odpdoc.model.identity import format_identity
from odpdoc.store.content import EntityContent
from odpdoc.store.schema import apply_runtime_pragmas, ensure_schema

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Infrastructure or integrity failure inside the record store."""


class EntityNotFoundError(StoreError):
    def __init__(self, identity: EntityIdentity) -> None:
        super().__init__(f"Entity {format_identity(identity, include_version=False)} not found")
        self.identity = identity


class VersionConflictError(StoreError):
    def __init__(self, identity: EntityIdentity, expected_version: int, current_version: int) -> None:
        super().__init__(
            f"Entity {format_identity(identity, include_version=False)} is at version "
            f"{current_version}, expected {expected_version}"
        )
        self.identity = identity
        self.expected_version = expected_version
        self.current_version = current_version


@dataclass(slots=True)
class StoredEntity:
    """Latest (or historical) version of an item; ``identity.version_id`` is that version."""

    identity: EntityIdentity
    title: str
    content: EntityContent
    created_by: str
    created_at: str


@dataclass(frozen=True, slots=True)
class SetupElement:
    id: int
    kind: SetupKind
    name: str
    description: str | None = None


_SELECT_VERSION = """
    SELECT
        i.kind AS kind,
        i.grp AS grp,
        i.entity_id AS entity_id,
        v.version AS version,
        v.title AS title,
        v.content AS content,
        v.created_by AS created_by,
        v.created_at AS created_at
    FROM items i
    JOIN item_versions v ON v.item_id = i.id
"""


def _row_to_entity(row: sqlite3.Row) -> StoredEntity:
    identity = EntityIdentity(
        kind=EntityKind(row["kind"]),
        group=DraftingGroup.from_token(row["grp"]),
        entity_id=int(row["entity_id"]),
        version_id=int(row["version"]),
    )
    return StoredEntity(
        identity=identity,
        title=row["title"],
        content=EntityContent.from_json(row["content"]),
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _row_to_setup(row: sqlite3.Row) -> SetupElement:
    return SetupElement(
        id=int(row["id"]),
        kind=SetupKind(row["kind"]),
        name=row["name"],
        description=row["description"],
    )


class RecordStore:
    """Record query and mutation services for ON/OR/OC items and setup elements."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        # Autocommit mode: transactions are opened explicitly by StoreTransaction.
        self._connection = sqlite3.connect(str(self._db_path), isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        apply_runtime_pragmas(self._connection)
        ensure_schema(self._connection)
        self._active: StoreTransaction | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        if self._active is not None and self._active.is_active:
            self._active.rollback()
        self._connection.close()

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def begin(self, actor: str) -> "StoreTransaction":
        if self._active is not None and self._active.is_active:
            raise StoreError("A transaction is already active on this store")
        self._active = StoreTransaction(self, actor)
        return self._active

    @contextmanager
    def transaction(self, actor: str) -> Iterator["StoreTransaction"]:
        """Commit on normal exit, roll back on any exception (including cancellation)."""

        tx = self.begin(actor)
        try:
            yield tx
        except BaseException:
            if tx.is_active:
                tx.rollback()
            raise
        if tx.is_active:
            tx.commit()

    def fetch_by_scope(self, group: DraftingGroup, kind: EntityKind | None = None) -> list[StoredEntity]:
        query = _SELECT_VERSION + " WHERE v.version = i.latest_version AND i.grp = ?"
        params: list[object] = [group.value]
        if kind is not None:
            query += " AND i.kind = ?"
            params.append(kind.value)
        query += " ORDER BY i.kind, i.entity_id"
        rows = self._execute(query, tuple(params)).fetchall()
        return [_row_to_entity(row) for row in rows]

    def fetch_by_identity(self, identity: EntityIdentity) -> StoredEntity | None:
        """Return the latest version of the item, ignoring ``identity.version_id``."""

        row = self._execute(
            _SELECT_VERSION
            + " WHERE v.version = i.latest_version AND i.kind = ? AND i.grp = ? AND i.entity_id = ?",
            (identity.kind.value, identity.group.value, identity.entity_id),
        ).fetchone()
        if row is None:
            return None
        return _row_to_entity(row)

    def history(self, identity: EntityIdentity) -> list[StoredEntity]:
        """Every stored version of the item, oldest first."""

        rows = self._execute(
            _SELECT_VERSION + " WHERE i.kind = ? AND i.grp = ? AND i.entity_id = ? ORDER BY v.version ASC",
            (identity.kind.value, identity.group.value, identity.entity_id),
        ).fetchall()
        return [_row_to_entity(row) for row in rows]

    def list_setup_elements(self, kind: SetupKind | None = None) -> list[SetupElement]:
        if kind is None:
            rows = self._execute("SELECT id, kind, name, description FROM setup_elements ORDER BY kind, name").fetchall()
        else:
            rows = self._execute(
                "SELECT id, kind, name, description FROM setup_elements WHERE kind = ? ORDER BY name",
                (kind.value,),
            ).fetchall()
        return [_row_to_setup(row) for row in rows]

    def register_setup_element(self, kind: SetupKind, name: str, description: str | None = None) -> SetupElement:
        """Create a setup element in its own transaction."""

        with self.transaction(actor="setup") as tx:
            return tx.create_setup_element(kind, name, description)

    def _execute(self, query: str, params: tuple[object, ...] = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, params)
        except sqlite3.Error as exc:
            raise StoreError(f"Record store query failed: {exc}") from exc


class StoreTransaction:
    """Live transaction handle; the only way to mutate the store."""

    def __init__(self, store: RecordStore, actor: str) -> None:
        if not actor:
            raise ValueError("actor cannot be empty")
        self._store = store
        self._actor = actor
        self._store._execute("BEGIN IMMEDIATE")
        self._active = True

    @property
    def actor(self) -> str:
        return self._actor

    @property
    def is_active(self) -> bool:
        return self._active

    def fetch_by_identity(self, identity: EntityIdentity) -> StoredEntity | None:
        self._ensure_active()
        return self._store.fetch_by_identity(identity)

    def fetch_by_scope(self, group: DraftingGroup, kind: EntityKind | None = None) -> list[StoredEntity]:
        self._ensure_active()
        return self._store.fetch_by_scope(group, kind)

    def list_setup_elements(self, kind: SetupKind | None = None) -> list[SetupElement]:
        self._ensure_active()
        return self._store.list_setup_elements(kind)

    def create_entity(
        self,
        kind: EntityKind,
        group: DraftingGroup,
        title: str,
        content: EntityContent,
    ) -> StoredEntity:
        self._ensure_active()
        row = self._store._execute(
            "SELECT COALESCE(MAX(entity_id), 0) + 1 AS next_id FROM items WHERE kind = ? AND grp = ?",
            (kind.value, group.value),
        ).fetchone()
        entity_id = int(row["next_id"])

        cursor = self._store._execute(
            "INSERT INTO items(kind, grp, entity_id, title, latest_version) VALUES(?, ?, ?, ?, 1)",
            (kind.value, group.value, entity_id, title),
        )
        self._insert_version(int(cursor.lastrowid), 1, title, content)

        identity = EntityIdentity(kind=kind, group=group, entity_id=entity_id, version_id=1)
        logger.debug("Created %s", format_identity(identity))
        return self._reload(identity)

    def update_entity(
        self,
        identity: EntityIdentity,
        title: str,
        content: EntityContent,
        expected_version: int,
    ) -> StoredEntity:
        """Append a new version; ``expected_version`` must equal the current latest version."""

        self._ensure_active()
        row = self._store._execute(
            "SELECT id, latest_version FROM items WHERE kind = ? AND grp = ? AND entity_id = ?",
            (identity.kind.value, identity.group.value, identity.entity_id),
        ).fetchone()
        if row is None:
            raise EntityNotFoundError(identity)

        current_version = int(row["latest_version"])
        if current_version != expected_version:
            raise VersionConflictError(identity, expected_version, current_version)

        new_version = current_version + 1
        item_id = int(row["id"])
        self._insert_version(item_id, new_version, title, content)
        self._store._execute(
            "UPDATE items SET title = ?, latest_version = ? WHERE id = ?",
            (title, new_version, item_id),
        )
        logger.debug("Updated %s to version %d", format_identity(identity, include_version=False), new_version)
        return self._reload(identity)

    def create_setup_element(self, kind: SetupKind, name: str, description: str | None = None) -> SetupElement:
        self._ensure_active()
        if not name.strip():
            raise ValueError("Setup element name cannot be empty")
        cursor = self._store._execute(
            "INSERT INTO setup_elements(kind, name, description) VALUES(?, ?, ?)",
            (kind.value, name.strip(), description),
        )
        return SetupElement(id=int(cursor.lastrowid), kind=kind, name=name.strip(), description=description)

    def commit(self) -> None:
        self._ensure_active()
        try:
            self._store._execute("COMMIT")
        finally:
            self._active = False

    def rollback(self) -> None:
        self._ensure_active()
        try:
            self._store._execute("ROLLBACK")
        finally:
            self._active = False

    def _insert_version(self, item_id: int, version: int, title: str, content: EntityContent) -> None:
        self._store._execute(
            """
            INSERT INTO item_versions(item_id, version, title, content, created_by)
            VALUES(?, ?, ?, ?, ?)
            """,
            (item_id, version, title, content.to_json(), self._actor),
        )

    def _reload(self, identity: EntityIdentity) -> StoredEntity:
        stored = self._store.fetch_by_identity(identity)
        if stored is None:
            raise StoreError(f"Item missing after write: {format_identity(identity, include_version=False)}")
        return stored

    def _ensure_active(self) -> None:
        if not self._active:
            raise StoreError("Transaction already completed")
