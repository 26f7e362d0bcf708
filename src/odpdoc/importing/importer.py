"""Transactional, version-aware application of an import batch."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from odpdoc.extraction.normalization import normalize_text
from odpdoc.importing.comparison import changed_fields
from odpdoc.mapping.mapper import UNRESOLVED_SETUP_POLICIES
from odpdoc.model.entities import (
    AnnotatedReference,
    EntityIdentity,
    EntityReference,
    FieldValue,
    ImportBatch,
    ImportResult,
    IssueCode,
    NewEntity,
    SetupKind,
    Severity,
    StructuredEntity,
    UpdatedEntity,
    ValidationIssue,
)
from odpdoc.model.identity import describe, format_identity
from odpdoc.store.content import EntityContent
from odpdoc.store.repository import (
    EntityNotFoundError,
    RecordStore,
    StoreTransaction,
    VersionConflictError,
)

logger = logging.getLogger(__name__)

NOOP_POLICIES = ("skip", "bump")


@dataclass(slots=True)
class _Pass:
    """Provisional outcome of one ordered pass over the batch."""

    issues: list[ValidationIssue]
    created: list[EntityIdentity] = field(default_factory=list)
    updated: list[UpdatedEntity] = field(default_factory=list)
    skipped: list[EntityIdentity] = field(default_factory=list)
    created_setup: list[AnnotatedReference] = field(default_factory=list)
    new_ids: dict[int, EntityIdentity] = field(default_factory=dict)
    setup_ids: dict[tuple[SetupKind, str], int] = field(default_factory=dict)

    def add(
        self,
        severity: Severity,
        code: IssueCode,
        entity_ref: str,
        message: str,
        field_name: str | None = None,
    ) -> None:
        self.issues.append(
            ValidationIssue(severity=severity, code=code, entity_ref=entity_ref, message=message, field=field_name)
        )


class TransactionalImporter:
    """Apply every entity of a batch inside one transaction, then commit or roll back once.

    Each entity is attempted even after earlier ones fail so the result lists
    every problem of the document. The transaction commits only when no
    blocking or error issue remains; ``force`` downgrades version conflicts
    to warnings and applies the update on top of the current version.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        noop_policy: str = "skip",
        unresolved_setup: str = "error",
    ) -> None:
        if noop_policy not in NOOP_POLICIES:
            raise ValueError(f"noop_policy must be one of {', '.join(NOOP_POLICIES)}")
        if unresolved_setup not in UNRESOLVED_SETUP_POLICIES:
            raise ValueError(f"unresolved_setup must be one of {', '.join(UNRESOLVED_SETUP_POLICIES)}")
        self._store = store
        self._noop_policy = noop_policy
        self._unresolved_setup = unresolved_setup

    def import_batch(self, batch: ImportBatch, actor: str, *, force: bool = False) -> ImportResult:
        state = _Pass(issues=list(batch.issues))
        tx = self._store.begin(actor)
        try:
            for entity in batch.entities:
                self._apply(tx, entity, state, force)

            if any(issue.severity.prevents_commit for issue in state.issues):
                tx.rollback()
                committed = False
            else:
                tx.commit()
                committed = True
        except BaseException:
            if tx.is_active:
                tx.rollback()
                logger.warning("Import aborted; transaction rolled back")
            raise

        result = ImportResult(
            errors=[issue for issue in state.issues if issue.severity.prevents_commit],
            warnings=[issue for issue in state.issues if not issue.severity.prevents_commit],
            committed=committed,
        )
        if committed:
            result.created = state.created
            result.updated = state.updated
            result.skipped = state.skipped
            result.created_setup_elements = state.created_setup

        logger.info(
            "Import %s: %d created, %d updated, %d unchanged, %d errors, %d warnings",
            "committed" if committed else "rolled back",
            len(state.created),
            len(state.updated),
            len(state.skipped),
            len(result.errors),
            len(result.warnings),
        )
        return result

    def _apply(self, tx: StoreTransaction, entity: StructuredEntity, state: _Pass, force: bool) -> None:
        entity_ref = describe(entity.identity, entity.title)

        fields = self._resolve_setup_fields(tx, entity, entity_ref, state)
        relationships = self._resolve_relationships(entity, entity_ref, state)
        if fields is None or relationships is None:
            return
        content = EntityContent(path=list(entity.path), fields=fields, relationships=relationships)

        if isinstance(entity.identity, NewEntity):
            self._create(tx, entity, content, state)
        else:
            self._update(tx, entity.identity, entity.title, content, state, force)

    def _create(self, tx: StoreTransaction, entity: StructuredEntity, content: EntityContent, state: _Pass) -> None:
        marker = entity.identity
        assert isinstance(marker, NewEntity)
        stored = tx.create_entity(marker.kind, marker.group, entity.title, content)
        identity = stored.identity.without_version()
        state.new_ids[marker.local_key] = identity
        state.created.append(identity)
        logger.debug("NEW -> CREATED %s %r", format_identity(identity), entity.title)

    def _update(
        self,
        tx: StoreTransaction,
        identity: EntityIdentity,
        title: str,
        content: EntityContent,
        state: _Pass,
        force: bool,
    ) -> None:
        entity_ref = format_identity(identity)
        current = tx.fetch_by_identity(identity)
        if current is None:
            state.add(Severity.ERROR, IssueCode.NOT_FOUND, entity_ref, "Entity does not exist in the record store")
            logger.debug("IDENTIFIED -> ERROR(not found) %s", entity_ref)
            return

        current_version = current.identity.version_id or 0
        if current_version != identity.version_id:
            message = f"Document edits version {identity.version_id}, store holds version {current_version}"
            if not force:
                state.add(Severity.ERROR, IssueCode.VERSION_CONFLICT, entity_ref, message)
                logger.debug("IDENTIFIED -> ERROR(version conflict) %s", entity_ref)
                return
            state.add(Severity.WARNING, IssueCode.VERSION_CONFLICT, entity_ref, f"{message}; overwritten (force)")

        changes = changed_fields(current, title, content)
        if not changes and self._noop_policy == "skip":
            state.skipped.append(identity.without_version())
            logger.debug("IDENTIFIED -> UNCHANGED %s", entity_ref)
            return

        try:
            stored = tx.update_entity(identity, title, content, expected_version=current_version)
        except (VersionConflictError, EntityNotFoundError) as exc:
            code = IssueCode.VERSION_CONFLICT if isinstance(exc, VersionConflictError) else IssueCode.NOT_FOUND
            state.add(Severity.ERROR, code, entity_ref, str(exc))
            return

        new_version = stored.identity.version_id or current_version + 1
        state.updated.append(UpdatedEntity(identity=identity, new_version_id=new_version))
        logger.debug("IDENTIFIED -> UPDATED %s -> [%d] (changed: %s)", entity_ref, new_version, ", ".join(changes) or "none")

    def _resolve_setup_fields(
        self,
        tx: StoreTransaction,
        entity: StructuredEntity,
        entity_ref: str,
        state: _Pass,
    ) -> dict[str, FieldValue] | None:
        fields: dict[str, FieldValue] = {}
        complete = True
        for name, value in entity.fields.items():
            if not isinstance(value, list):
                fields[name] = value
                continue

            resolved: list[AnnotatedReference] = []
            for reference in value:
                if reference.id is not None:
                    resolved.append(reference)
                    continue
                setup_id = self._ensure_setup_element(tx, reference, entity_ref, name, state)
                if setup_id is None:
                    complete = False
                    continue
                resolved.append(
                    AnnotatedReference(kind=reference.kind, id=setup_id, name=reference.name, note=reference.note)
                )
            fields[name] = resolved
        return fields if complete else None

    def _ensure_setup_element(
        self,
        tx: StoreTransaction,
        reference: AnnotatedReference,
        entity_ref: str,
        field_name: str,
        state: _Pass,
    ) -> int | None:
        if self._unresolved_setup != "create":
            state.add(
                Severity.ERROR,
                IssueCode.UNRESOLVED_REFERENCE,
                entity_ref,
                f"No {reference.kind.value} named {reference.name!r}",
                field_name,
            )
            return None

        key = (reference.kind, normalize_text(reference.name))
        if key in state.setup_ids:
            return state.setup_ids[key]

        for element in tx.list_setup_elements(reference.kind):
            if normalize_text(element.name) == key[1]:
                state.setup_ids[key] = element.id
                return element.id

        element = tx.create_setup_element(reference.kind, reference.name)
        state.setup_ids[key] = element.id
        state.created_setup.append(AnnotatedReference(kind=element.kind, id=element.id, name=element.name))
        state.add(
            Severity.WARNING,
            IssueCode.SETUP_CREATED,
            entity_ref,
            f"Created {element.kind.value} {element.name!r}",
            field_name,
        )
        return element.id

    def _resolve_relationships(
        self,
        entity: StructuredEntity,
        entity_ref: str,
        state: _Pass,
    ) -> dict[str, list[EntityReference]] | None:
        relationships: dict[str, list[EntityReference]] = {}
        complete = True
        for name, references in entity.relationships.items():
            resolved: list[EntityReference] = []
            for reference in references:
                if reference.entity_id is not None:
                    resolved.append(reference)
                    continue
                created = state.new_ids.get(reference.local_key) if reference.local_key is not None else None
                if created is None:
                    state.add(
                        Severity.ERROR,
                        IssueCode.DEPENDENCY_FAILED,
                        entity_ref,
                        f"Referenced new entity {reference.title!r} was not created",
                        name,
                    )
                    complete = False
                    continue
                resolved.append(
                    EntityReference(
                        kind=created.kind,
                        group=created.group,
                        entity_id=created.entity_id,
                        title=reference.title,
                    )
                )
            relationships[name] = resolved
        return relationships if complete else None
