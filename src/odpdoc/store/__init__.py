"""Versioned SQLite record store."""

from .content import EntityContent
from .repository import (
    EntityNotFoundError,
    RecordStore,
    SetupElement,
    StoredEntity,
    StoreError,
    StoreTransaction,
    VersionConflictError,
)

__all__ = [
    "EntityContent",
    "EntityNotFoundError",
    "RecordStore",
    "SetupElement",
    "StoreError",
    "StoreTransaction",
    "StoredEntity",
    "VersionConflictError",
]
