"""Field-level comparison of stored and incoming entity content."""

from __future__ import annotations

from odpdoc.extraction.normalization import normalize_whitespace
from odpdoc.model.entities import AnnotatedReference, EntityReference, FieldValue, RichText
from odpdoc.store.content import EntityContent
from odpdoc.store.repository import StoredEntity


def _canonical_value(value: FieldValue | None) -> object:
    if value is None:
        return None
    if isinstance(value, RichText):
        paragraphs = tuple(
            (normalize_whitespace(paragraph.text), paragraph.list_item)
            for paragraph in value.paragraphs
            if paragraph.text.strip()
        )
        return paragraphs or None
    if isinstance(value, str):
        return normalize_whitespace(value) or None
    return _canonical_setup_references(value) or None


def _canonical_setup_references(references: list[AnnotatedReference]) -> frozenset[tuple[object, ...]]:
    return frozenset(
        (reference.kind.value, reference.id, normalize_whitespace(reference.note or "")) for reference in references
    )


def _canonical_relationships(references: list[EntityReference]) -> frozenset[tuple[object, ...]] | None:
    keys = frozenset((reference.kind.value, reference.group.value, reference.entity_id) for reference in references)
    return keys or None


def changed_fields(stored: StoredEntity, title: str, content: EntityContent) -> list[str]:
    """Names of everything that differs; ``title`` and ``path`` are reported by those names.

    Empty values and missing keys compare equal, rich text ignores
    whitespace differences, and reference lists compare as sets.
    """

    changes: list[str] = []
    if normalize_whitespace(stored.title) != normalize_whitespace(title):
        changes.append("title")
    if [normalize_whitespace(part) for part in stored.content.path] != [normalize_whitespace(part) for part in content.path]:
        changes.append("path")

    for name in sorted(set(stored.content.fields) | set(content.fields)):
        if _canonical_value(stored.content.fields.get(name)) != _canonical_value(content.fields.get(name)):
            changes.append(name)

    for name in sorted(set(stored.content.relationships) | set(content.relationships)):
        before = _canonical_relationships(stored.content.relationships.get(name, []))
        after = _canonical_relationships(content.relationships.get(name, []))
        if before != after:
            changes.append(name)
    return changes
