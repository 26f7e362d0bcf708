"""Build the generic section tree for one drafting group."""

from __future__ import annotations

import logging

from odpdoc.extraction.models import Link, Paragraph, Section
from odpdoc.mapping.fields import IDENTITY_LABEL, LIST_HEADINGS, FieldType, field_specs
from odpdoc.model.entities import (
    AnnotatedReference,
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    EntityReference,
    RichText,
)
from odpdoc.model.identity import anchor_for, format_identity
from odpdoc.store.repository import RecordStore, StoredEntity

logger = logging.getLogger(__name__)

_KIND_ORDER = {EntityKind.ON: 0, EntityKind.OR: 1, EntityKind.OC: 2}


def document_title(group: DraftingGroup) -> str:
    return f"{group.display_name} Operational Content"


class HierarchyBuilder:
    """Turn the stored entities of a scope into the tree the extractor would produce."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._titles: dict[EntityIdentity, str] = {}
        self._setup_names: dict[int, str] = {}

    def build(self, group: DraftingGroup) -> Section:
        entities = self._store.fetch_by_scope(group)
        self._titles = {entity.identity.without_version(): entity.title for entity in entities}
        self._setup_names = {element.id: element.name for element in self._store.list_setup_elements()}

        root = Section(level=0, title=document_title(group))
        ordered = sorted(
            entities,
            key=lambda item: (item.content.path, _KIND_ORDER[item.identity.kind], item.identity.entity_id),
        )
        for entity in ordered:
            folder = self._folder(root, entity.content.path)
            entity_list = self._entity_list(folder, entity.identity.kind)
            entity_list.subsections.append(self._entity_section(entity_list, entity))

        logger.info("Built export hierarchy for %s with %d entities", group.value, len(entities))
        return root

    def _folder(self, root: Section, path: list[str]) -> Section:
        current = root
        for title in path:
            existing = next(
                (
                    child
                    for child in current.subsections
                    if child.title == title and child.title not in LIST_HEADINGS.values()
                ),
                None,
            )
            if existing is None:
                existing = Section(level=current.level + 1, title=title, path=_child_path(current))
                current.subsections.append(existing)
            current = existing
        return current

    def _entity_list(self, folder: Section, kind: EntityKind) -> Section:
        heading = LIST_HEADINGS[kind]
        for child in folder.subsections:
            if child.title == heading:
                return child
        section = Section(level=folder.level + 1, title=heading, path=_child_path(folder))
        folder.subsections.append(section)
        return section

    def _entity_section(self, parent: Section, entity: StoredEntity) -> Section:
        identity = entity.identity
        section = Section(
            level=parent.level + 1,
            title=entity.title,
            path=_child_path(parent),
            anchor=anchor_for(identity),
        )
        section.paragraphs.append(Paragraph(text=f"{IDENTITY_LABEL}: {format_identity(identity)}"))

        for spec in field_specs(identity.kind):
            if spec.field_type is FieldType.ENTITY_REFERENCES:
                references = entity.content.relationships.get(spec.name, [])
                if references:
                    section.paragraphs.append(Paragraph(text=f"{spec.label}:"))
                    section.paragraphs.extend(self._entity_reference_item(reference) for reference in references)
                continue

            value = entity.content.fields.get(spec.name)
            if isinstance(value, RichText):
                if not value.is_empty:
                    section.paragraphs.append(Paragraph(text=f"{spec.label}:"))
                    section.paragraphs.extend(
                        Paragraph(text=paragraph.text, list_item=paragraph.list_item)
                        for paragraph in value.paragraphs
                        if paragraph.text.strip()
                    )
            elif isinstance(value, str):
                section.paragraphs.append(Paragraph(text=f"{spec.label}: {value or spec.default}"))
            elif value:
                section.paragraphs.append(Paragraph(text=f"{spec.label}:"))
                section.paragraphs.extend(self._setup_item(reference) for reference in value)
        return section

    def _entity_reference_item(self, reference: EntityReference) -> Paragraph:
        assert reference.entity_id is not None
        identity = EntityIdentity(kind=reference.kind, group=reference.group, entity_id=reference.entity_id)
        title = self._title_of(identity)
        text = f"{title} ({format_identity(identity)})" if title else f"({format_identity(identity)})"
        link = Link(text=text, target=f"#{anchor_for(identity)}", char_start=0, char_end=len(text))
        return Paragraph(text=text, list_item=True, links=[link])

    def _title_of(self, identity: EntityIdentity) -> str:
        if identity not in self._titles:
            stored = self._store.fetch_by_identity(identity)
            self._titles[identity] = stored.title if stored is not None else ""
        return self._titles[identity]

    def _setup_item(self, reference: AnnotatedReference) -> Paragraph:
        # Setup elements may have been renamed since the entity version was stored.
        name = self._setup_names.get(reference.id, reference.name) if reference.id is not None else reference.name
        text = f"{name} [{reference.note}]" if reference.note else name
        return Paragraph(text=text, list_item=True)


def _child_path(parent: Section) -> list[str]:
    if parent.level == 0:
        return [parent.title] if parent.title else []
    return [*parent.path, parent.title]
