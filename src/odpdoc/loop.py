"""Import and export entrypoints wiring extractor, mapper, importer and generator."""

from __future__ import annotations

import logging

from odpdoc.config import LoopSettings
from odpdoc.export.docx_generator import DocxGenerator
from odpdoc.export.hierarchy import HierarchyBuilder
from odpdoc.extraction.docx_extractor import DocxExtractor
from odpdoc.extraction.models import ExtractionWarning, Section
from odpdoc.importing.importer import TransactionalImporter
from odpdoc.mapping.mapper import DomainMapper
from odpdoc.mapping.references import ReferenceResolver
from odpdoc.model.entities import DraftingGroup, ImportResult, IssueCode, Severity, ValidationIssue
from odpdoc.store.repository import RecordStore

logger = logging.getLogger(__name__)


class DocumentLoop:
    """Round trip between the record store and Word documents for one drafting group at a time."""

    def __init__(
        self,
        store: RecordStore,
        settings: LoopSettings | None = None,
        *,
        extractor: DocxExtractor | None = None,
        generator: DocxGenerator | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or LoopSettings()
        self._extractor = extractor or DocxExtractor()
        self._generator = generator or DocxGenerator()

    def extract_structure(self, data: bytes) -> tuple[Section, list[ExtractionWarning]]:
        return self._extractor.extract(data)

    def import_document(
        self,
        data: bytes,
        scope: str,
        *,
        force: bool = False,
        actor: str | None = None,
    ) -> ImportResult:
        """Apply an edited document to the store.

        Raises ``ExtractionError`` for unreadable input and ``StoreError`` for
        store failures; every entity-level problem is reported in the result.
        """

        group = DraftingGroup.from_token(scope)
        tree, extraction_warnings = self._extractor.extract(data)

        resolver = ReferenceResolver(
            group,
            entities=self._store.fetch_by_scope(group),
            setup_elements=self._store.list_setup_elements(),
            fetch_entity=self._store.fetch_by_identity,
        )
        mapper = DomainMapper(unresolved_setup=self._settings.unresolved_setup)
        batch = mapper.map(tree, group, resolver)
        batch.issues[:0] = [
            ValidationIssue(
                severity=Severity.WARNING,
                code=IssueCode.IGNORED_CONTENT,
                entity_ref=warning.location or "document",
                message=warning.message,
            )
            for warning in extraction_warnings
        ]

        importer = TransactionalImporter(
            self._store,
            noop_policy=self._settings.noop_updates,
            unresolved_setup=self._settings.unresolved_setup,
        )
        logger.info("Importing %d entities into %s (force=%s)", len(batch.entities), group.value, force)
        return importer.import_batch(batch, actor or self._settings.actor, force=force)

    def export_document(self, scope: str) -> bytes:
        group = DraftingGroup.from_token(scope)
        tree = HierarchyBuilder(self._store).build(group)
        return self._generator.render(tree)
