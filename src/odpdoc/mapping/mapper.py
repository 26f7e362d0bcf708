"""Domain mapper: generic heading tree -> typed ON/OR/OC change-requests."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

from odpdoc.extraction.models import Link, Paragraph, Section
from odpdoc.extraction.normalization import normalize_text, normalize_whitespace, strip_numbering
from odpdoc.mapping.fields import (
    EMPTY_LIST_MARKERS,
    IDENTITY_LABEL,
    FieldSpec,
    FieldType,
    entity_list_kind,
    field_specs,
    lookup_label,
)
from odpdoc.mapping.references import (
    ReferenceResolver,
    UnresolvedReference,
    split_entity_reference,
    split_setup_reference,
)
from odpdoc.model.entities import (
    AnnotatedReference,
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    EntityReference,
    FieldValue,
    ImportBatch,
    IssueCode,
    NewEntity,
    RichParagraph,
    RichText,
    Severity,
    StructuredEntity,
    ValidationIssue,
)
from odpdoc.model.identity import IdentityParseError, describe, format_identity, parse_identity

logger = logging.getLogger(__name__)

UNRESOLVED_SETUP_POLICIES = ("error", "create")

_LABEL_RE = re.compile(r"^(?P<label>[^:]+?)\s*:\s*(?P<value>.*)$")
# Up to four capitalized words and a colon, alone on the line ("Owner Notes:").
_BARE_LABEL_RE = re.compile(r"^[A-Z][\w/&-]*(?:\s+[A-Z][\w/&-]*){0,3}:$")
_DOCUMENT_REF = "document"


@dataclass(slots=True)
class _FieldBuffer:
    """Content collected for one label until the next label."""

    spec: FieldSpec
    inline: str = ""
    inline_paragraph: Paragraph | None = None
    paragraphs: list[Paragraph] = field(default_factory=list)


@dataclass(slots=True)
class _Candidate:
    kind: EntityKind
    section: Section
    path: list[str]
    ordinal: int


class DomainMapper:
    """Walk the generic tree, recognize entities and validate their fields.

    ``unresolved_setup`` decides what happens to setup-element names the
    resolver does not know: ``error`` reports them, ``create`` passes them
    on (``id=None``) so the importer creates them inside its transaction.
    """

    def __init__(self, unresolved_setup: str = "error") -> None:
        if unresolved_setup not in UNRESOLVED_SETUP_POLICIES:
            raise ValueError(f"unresolved_setup must be one of {', '.join(UNRESOLVED_SETUP_POLICIES)}")
        self._unresolved_setup = unresolved_setup

    def map(
        self,
        tree: Section,
        scope: DraftingGroup,
        resolver: ReferenceResolver | None = None,
    ) -> ImportBatch:
        resolver = resolver or ReferenceResolver(scope)
        batch = ImportBatch()

        candidates: list[_Candidate] = []
        self._collect_candidates(tree, [], candidates, batch)
        if not candidates:
            batch.issues.append(
                ValidationIssue(
                    severity=Severity.BLOCKING,
                    code=IssueCode.NO_ENTITIES,
                    entity_ref=_DOCUMENT_REF,
                    message="No entity list heading (Operational Needs / Requirements / Changes) with entities found",
                )
            )
            return batch

        seen: dict[EntityIdentity, str] = {}
        for candidate in candidates:
            entity = self._map_candidate(candidate, scope, resolver, seen, batch.issues)
            if entity is None:
                continue
            batch.entities.append(entity)
            if isinstance(entity.identity, NewEntity):
                resolver.declare_new(entity.identity, entity.title, entity.anchor)

        logger.info(
            "Mapped %d of %d candidate entities with %d issues",
            len(batch.entities),
            len(candidates),
            len(batch.issues),
        )
        return batch

    def _collect_candidates(
        self,
        section: Section,
        folders: list[str],
        candidates: list[_Candidate],
        batch: ImportBatch,
    ) -> None:
        for child in section.subsections:
            kind = entity_list_kind(child.title)
            if kind is None:
                self._collect_candidates(child, [*folders, strip_numbering(child.title)], candidates, batch)
                continue

            if child.paragraphs or child.tables:
                batch.issues.append(
                    ValidationIssue(
                        severity=Severity.WARNING,
                        code=IssueCode.IGNORED_CONTENT,
                        entity_ref=_DOCUMENT_REF,
                        message=f"Text directly under {child.title!r} is not part of any entity and was ignored",
                    )
                )
            for entity_section in child.subsections:
                candidates.append(
                    _Candidate(kind=kind, section=entity_section, path=list(folders), ordinal=len(candidates))
                )

    def _map_candidate(
        self,
        candidate: _Candidate,
        scope: DraftingGroup,
        resolver: ReferenceResolver,
        seen: dict[EntityIdentity, str],
        issues: list[ValidationIssue],
    ) -> StructuredEntity | None:
        section = candidate.section
        kind = candidate.kind
        title = normalize_whitespace(section.title)
        paragraphs = list(section.paragraphs)

        if not title:
            issues.append(
                ValidationIssue(
                    severity=Severity.BLOCKING,
                    code=IssueCode.EMPTY_TITLE,
                    entity_ref=f"{kind.code} #{candidate.ordinal + 1}",
                    message="Entity heading has no title",
                )
            )
            return None

        identity: EntityIdentity | NewEntity
        identity_value = self._identity_value(paragraphs[0]) if paragraphs else None
        if identity_value is not None:
            paragraphs = paragraphs[1:]
        if any(not paragraph.list_item and self._identity_value(paragraph) is not None for paragraph in paragraphs):
            issues.append(
                ValidationIssue(
                    severity=Severity.BLOCKING,
                    code=IssueCode.IDENTITY_PARSE,
                    entity_ref=repr(title),
                    field="identity",
                    message="Identity line must be the first paragraph of the entity and appear once",
                )
            )
            return None

        if identity_value is None:
            identity = NewEntity(kind=kind, group=scope, local_key=candidate.ordinal)
        else:
            parsed = self._parse_identity_line(identity_value, kind, scope, title, seen, issues)
            if parsed is None:
                return None
            identity = parsed

        entity_ref = describe(identity, title)
        entity = StructuredEntity(
            identity=identity,
            kind=kind,
            title=title,
            path=list(candidate.path),
            anchor=section.anchor,
        )

        buffers = self._split_fields(kind, paragraphs, entity_ref, issues)
        for spec in field_specs(kind):
            buffer = buffers.get(spec.name)
            if spec.is_relationship:
                entity.relationships[spec.name] = self._entity_references(spec, buffer, resolver, entity_ref, issues)
            else:
                entity.fields[spec.name] = self._field_value(spec, buffer, resolver, entity_ref, issues)

        if section.subsections:
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    code=IssueCode.IGNORED_CONTENT,
                    entity_ref=entity_ref,
                    message=f"{len(section.subsections)} sub-heading(s) under the entity were ignored",
                )
            )
        if section.tables:
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    code=IssueCode.IGNORED_CONTENT,
                    entity_ref=entity_ref,
                    message=f"{len(section.tables)} table(s) under the entity were ignored",
                )
            )
        return entity

    def _identity_value(self, paragraph: Paragraph) -> str | None:
        match = _LABEL_RE.match(paragraph.text)
        if match is None or normalize_text(match.group("label")) != normalize_text(IDENTITY_LABEL):
            return None
        return match.group("value").strip()

    def _parse_identity_line(
        self,
        value: str,
        kind: EntityKind,
        scope: DraftingGroup,
        title: str,
        seen: dict[EntityIdentity, str],
        issues: list[ValidationIssue],
    ) -> EntityIdentity | None:
        entity_ref = repr(title)
        try:
            identity = parse_identity(value)
        except IdentityParseError as exc:
            issues.append(
                ValidationIssue(
                    severity=Severity.BLOCKING,
                    code=IssueCode.IDENTITY_PARSE,
                    entity_ref=entity_ref,
                    field="identity",
                    message=str(exc),
                )
            )
            return None

        entity_ref = format_identity(identity)
        problem: tuple[IssueCode, str] | None = None
        if identity.version_id is None:
            problem = (IssueCode.IDENTITY_PARSE, "Identity line must carry the edited [versionId]")
        elif identity.kind is not kind:
            problem = (
                IssueCode.IDENTITY_MISMATCH,
                f"{identity.kind.code} identity listed under the {kind.display_name} list",
            )
        elif identity.group is not scope:
            problem = (
                IssueCode.IDENTITY_MISMATCH,
                f"Identity belongs to group {identity.group.value}, document scope is {scope.value}",
            )
        elif identity.without_version() in seen:
            problem = (
                IssueCode.DUPLICATE_IDENTITY,
                f"Entity already appears in this document as {seen[identity.without_version()]!r}",
            )

        if problem is not None:
            code, message = problem
            issues.append(
                ValidationIssue(
                    severity=Severity.BLOCKING,
                    code=code,
                    entity_ref=entity_ref,
                    field="identity",
                    message=message,
                )
            )
            return None

        seen[identity.without_version()] = title
        return identity

    def _split_fields(
        self,
        kind: EntityKind,
        paragraphs: list[Paragraph],
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> dict[str, _FieldBuffer]:
        buffers: dict[str, _FieldBuffer] = {}
        current: _FieldBuffer | None = None
        stray: list[str] = []

        for paragraph in paragraphs:
            label_match = None if paragraph.list_item else _LABEL_RE.match(paragraph.text)
            spec = lookup_label(kind, label_match.group("label")) if label_match else None

            if spec is not None:
                inline = label_match.group("value").strip()
                if spec.name in buffers:
                    issues.append(
                        ValidationIssue(
                            severity=Severity.WARNING,
                            code=IssueCode.UNKNOWN_LABEL,
                            entity_ref=entity_ref,
                            field=spec.name,
                            message=f"Label {spec.label!r} repeated; content appended to the first occurrence",
                        )
                    )
                    current = buffers[spec.name]
                    if inline:
                        current.paragraphs.append(
                            Paragraph(text=inline, list_item=False, links=self._shift_links(paragraph, inline))
                        )
                    continue
                current = _FieldBuffer(spec=spec, inline=inline, inline_paragraph=paragraph if inline else None)
                buffers[spec.name] = current
                continue

            if not paragraph.list_item and _BARE_LABEL_RE.match(paragraph.text):
                # Rich text keeps the line and what follows; other fields end here.
                if current is not None and current.spec.field_type is FieldType.RICH_TEXT:
                    message = f"Unrecognized label {paragraph.text!r} kept as part of {current.spec.label!r}"
                    current.paragraphs.append(paragraph)
                else:
                    message = f"Unrecognized label {paragraph.text!r}; its content was ignored"
                    current = None
                issues.append(
                    ValidationIssue(
                        severity=Severity.WARNING,
                        code=IssueCode.UNKNOWN_LABEL,
                        entity_ref=entity_ref,
                        message=message,
                    )
                )
                continue

            if current is None:
                stray.append(paragraph.text)
            elif not current.spec.is_multiline:
                # Single-line values may sit on the line after their label.
                if current.inline or current.paragraphs:
                    stray.append(paragraph.text)
                else:
                    current.inline = paragraph.text
                    current.inline_paragraph = paragraph
            else:
                current.paragraphs.append(paragraph)

        if stray:
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    code=IssueCode.IGNORED_CONTENT,
                    entity_ref=entity_ref,
                    message=f"{len(stray)} paragraph(s) outside any recognized field were ignored",
                )
            )
        return buffers

    def _shift_links(self, paragraph: Paragraph, inline: str) -> list[Link]:
        offset = paragraph.text.rfind(inline)
        if offset < 0:
            return []
        shifted: list[Link] = []
        for link in paragraph.links:
            if link.char_start >= offset:
                shifted.append(
                    Link(
                        text=link.text,
                        target=link.target,
                        char_start=link.char_start - offset,
                        char_end=link.char_end - offset,
                    )
                )
        return shifted

    def _field_value(
        self,
        spec: FieldSpec,
        buffer: _FieldBuffer | None,
        resolver: ReferenceResolver,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> FieldValue:
        if spec.field_type is FieldType.RICH_TEXT:
            value = self._rich_text(buffer)
            if spec.required and value.is_empty:
                issues.append(
                    ValidationIssue(
                        severity=Severity.ERROR,
                        code=IssueCode.MISSING_FIELD,
                        entity_ref=entity_ref,
                        field=spec.name,
                        message=f"Required field {spec.label!r} is missing or empty",
                    )
                )
            return value

        if spec.field_type is FieldType.PLAIN:
            return self._plain_value(spec, buffer, entity_ref, issues)

        return self._setup_references(spec, buffer, resolver, entity_ref, issues)

    def _rich_text(self, buffer: _FieldBuffer | None) -> RichText:
        if buffer is None:
            return RichText()
        paragraphs: list[RichParagraph] = []
        if buffer.inline:
            paragraphs.append(RichParagraph(text=buffer.inline))
        paragraphs.extend(RichParagraph(text=item.text, list_item=item.list_item) for item in buffer.paragraphs)
        return RichText(tuple(paragraphs))

    def _plain_value(
        self,
        spec: FieldSpec,
        buffer: _FieldBuffer | None,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> str:
        raw = buffer.inline if buffer is not None else ""
        if not raw:
            if spec.required:
                issues.append(
                    ValidationIssue(
                        severity=Severity.ERROR,
                        code=IssueCode.MISSING_FIELD,
                        entity_ref=entity_ref,
                        field=spec.name,
                        message=f"Required field {spec.label!r} is missing or empty",
                    )
                )
            return spec.default

        if not spec.choices:
            return raw
        for choice in spec.choices:
            if normalize_text(choice) == normalize_text(raw):
                return choice
        issues.append(
            ValidationIssue(
                severity=Severity.ERROR,
                code=IssueCode.INVALID_VALUE,
                entity_ref=entity_ref,
                field=spec.name,
                message=f"{spec.label} must be one of {', '.join(spec.choices)}, got {raw!r}",
            )
        )
        return spec.default

    def _list_items(self, buffer: _FieldBuffer | None) -> list[tuple[str, list[Link]]]:
        """Return (item text, links inside the item) pairs; explicit empty markers yield nothing."""

        if buffer is None:
            return []

        items: list[tuple[str, list[Link]]] = []
        if buffer.inline:
            source = buffer.inline_paragraph
            search_from = len(source.text) - len(buffer.inline) if source is not None else 0
            for piece in buffer.inline.split(";"):
                text = piece.strip()
                if not text:
                    continue
                links: list[Link] = []
                if source is not None:
                    start = source.text.find(text, search_from)
                    if start >= 0:
                        end = start + len(text)
                        links = [link for link in source.links if link.char_start < end and link.char_end > start]
                        search_from = end
                items.append((text, links))

        for paragraph in buffer.paragraphs:
            text = paragraph.text.strip()
            if text:
                items.append((text, list(paragraph.links)))

        if len(items) == 1 and normalize_text(items[0][0]) in EMPTY_LIST_MARKERS:
            return []
        return [item for item in items if normalize_text(item[0]) not in EMPTY_LIST_MARKERS]

    def _setup_references(
        self,
        spec: FieldSpec,
        buffer: _FieldBuffer | None,
        resolver: ReferenceResolver,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> list[AnnotatedReference]:
        assert spec.setup_kind is not None
        references: list[AnnotatedReference] = []
        seen: set[tuple[str, str | None]] = set()

        for text, _links in self._list_items(buffer):
            name, note = split_setup_reference(text)
            resolved = resolver.resolve_setup_element(spec.setup_kind, name, note)
            if isinstance(resolved, UnresolvedReference):
                if resolved.code is IssueCode.UNRESOLVED_REFERENCE and self._unresolved_setup == "create":
                    resolved = AnnotatedReference(kind=spec.setup_kind, id=None, name=name, note=note)
                else:
                    issues.append(
                        ValidationIssue(
                            severity=Severity.ERROR,
                            code=resolved.code,
                            entity_ref=entity_ref,
                            field=spec.name,
                            message=f"Cannot resolve {text!r}: {resolved.reason}",
                        )
                    )
                    continue

            key = (normalize_text(resolved.name), resolved.note)
            if key in seen:
                continue
            seen.add(key)
            references.append(resolved)
        return references

    def _entity_references(
        self,
        spec: FieldSpec,
        buffer: _FieldBuffer | None,
        resolver: ReferenceResolver,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> list[EntityReference]:
        references: list[EntityReference] = []
        seen: set[tuple[EntityKind, DraftingGroup, int | None, int | None]] = set()

        for text, links in self._list_items(buffer):
            resolved = resolver.resolve_entity_reference(text, spec.target_kinds)
            if isinstance(resolved, UnresolvedReference):
                issues.append(
                    ValidationIssue(
                        severity=Severity.ERROR,
                        code=resolved.code,
                        entity_ref=entity_ref,
                        field=spec.name,
                        message=f"Cannot resolve {text!r}: {resolved.reason}",
                    )
                )
                continue

            self._check_title(text, resolved, spec, entity_ref, issues)
            self._check_links(text, links, resolved, resolver, spec, entity_ref, issues)

            key = (resolved.kind, resolved.group, resolved.entity_id, resolved.local_key)
            if key in seen:
                continue
            seen.add(key)
            references.append(resolved)
        return references

    def _check_title(
        self,
        text: str,
        reference: EntityReference,
        spec: FieldSpec,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> None:
        title, identity_text = split_entity_reference(text)
        if identity_text is None or not title or not reference.title:
            return
        if normalize_text(title) == normalize_text(reference.title):
            return
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                code=IssueCode.TITLE_DRIFT,
                entity_ref=entity_ref,
                field=spec.name,
                message=f"Reference {text!r} names {identity_text} whose current title is {reference.title!r}",
            )
        )

    def _check_links(
        self,
        text: str,
        links: list[Link],
        reference: EntityReference,
        resolver: ReferenceResolver,
        spec: FieldSpec,
        entity_ref: str,
        issues: list[ValidationIssue],
    ) -> None:
        anchors = [link.anchor for link in links if link.anchor]
        if not anchors:
            return
        expected = resolver.anchor_of(reference)
        if expected is None or expected in anchors:
            return
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                code=IssueCode.LINK_MISMATCH,
                entity_ref=entity_ref,
                field=spec.name,
                message=f"Hyperlink on {text!r} points to #{anchors[0]}, expected #{expected}",
            )
        )
