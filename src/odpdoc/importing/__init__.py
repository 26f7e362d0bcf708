"""Transactional import of mapped batches."""

from .comparison import changed_fields
from .importer import NOOP_POLICIES, TransactionalImporter

__all__ = ["NOOP_POLICIES", "TransactionalImporter", "changed_fields"]
