from __future__ import annotations

from datetime import datetime

from odpdoc.extraction.models import Link, Paragraph, Section
from odpdoc.mapping.mapper import DomainMapper
from odpdoc.mapping.references import ReferenceResolver
from odpdoc.model.entities import (
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    IssueCode,
    NewEntity,
    RichText,
    SetupKind,
    Severity,
)
from odpdoc.store.content import EntityContent
from odpdoc.store.repository import SetupElement, StoredEntity


def _entity(title: str, *lines: str | Paragraph, anchor: str | None = None) -> Section:
    paragraphs = [line if isinstance(line, Paragraph) else Paragraph(text=line) for line in lines]
    return Section(level=3, title=title, anchor=anchor, paragraphs=paragraphs)


def _tree(*lists: tuple[str, list[Section]], folder: str | None = "Data Management") -> Section:
    list_sections = [Section(level=2, title=title, subsections=entities) for title, entities in lists]
    root = Section(level=0, title="iDL")
    if folder is None:
        for section in list_sections:
            section.level = 1
        root.subsections = list_sections
    else:
        root.subsections = [Section(level=1, title=folder, subsections=list_sections)]
    return root


def _stored(kind: EntityKind, entity_id: int, title: str, version: int = 1) -> StoredEntity:
    return StoredEntity(
        identity=EntityIdentity(kind=kind, group=DraftingGroup.IDL, entity_id=entity_id, version_id=version),
        title=title,
        content=EntityContent(),
        created_by="tester",
        created_at=datetime(2026, 1, 1).isoformat(),
    )


def _codes(batch, severity: Severity | None = None) -> list[IssueCode]:
    return [issue.code for issue in batch.issues if severity is None or issue.severity is severity]


def test_new_on_with_statement_maps_to_creation() -> None:
    tree = _tree(("Operational Needs", [_entity("Data Quality", "Statement: Data must be validated at entry.")]))

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert batch.issues == []
    assert len(batch.entities) == 1
    entity = batch.entities[0]
    assert entity.is_new
    assert entity.identity == NewEntity(kind=EntityKind.ON, group=DraftingGroup.IDL, local_key=0)
    assert entity.title == "Data Quality"
    assert entity.path == ["Data Management"]
    assert entity.fields["statement"].plain_text() == "Data must be validated at entry."
    assert entity.fields["rationale"] == RichText()
    assert entity.relationships == {"refines": []}


def test_identity_line_routes_to_update() -> None:
    tree = _tree(
        (
            "Operational Requirements",
            [_entity("Core Infrastructure", "Identity: or:idl/512[3]", "Statement: Keep it running.")],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert batch.issues == []
    identity = batch.entities[0].identity
    assert identity == EntityIdentity(kind=EntityKind.OR, group=DraftingGroup.IDL, entity_id=512, version_id=3)
    assert set(batch.entities[0].relationships) == {"refines", "implements", "depends_on"}


def test_multiline_fields_collect_following_paragraphs() -> None:
    tree = _tree(
        (
            "Needs",
            [
                _entity(
                    "Data Quality",
                    "Statement:",
                    "First paragraph.",
                    Paragraph(text="a list item", list_item=True),
                    "Rationale: Because.",
                    "Second rationale line.",
                )
            ],
        ),
        folder=None,
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)
    entity = batch.entities[0]

    assert batch.issues == []
    assert entity.path == []
    statement = entity.fields["statement"]
    assert [(item.text, item.list_item) for item in statement.paragraphs] == [
        ("First paragraph.", False),
        ("a list item", True),
    ]
    assert entity.fields["rationale"].plain_text() == "Because.\nSecond rationale line."


def test_malformed_identity_blocks_only_that_entity() -> None:
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity("First", "Statement: one"),
                _entity("Broken", "Identity: on:idl/five[1]", "Statement: two"),
                _entity("Third", "Statement: three"),
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert [entity.title for entity in batch.entities] == ["First", "Third"]
    assert _codes(batch) == [IssueCode.IDENTITY_PARSE]
    assert batch.issues[0].severity is Severity.BLOCKING
    assert batch.has_blocking_issues


def test_identity_line_after_other_content_is_blocking() -> None:
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity("Data Quality", "Statement: new text", "Identity: on:idl/1[1]"),
                _entity("Twice", "Identity: on:idl/2[1]", "Statement: a", "Identity: on:idl/2[1]"),
                _entity("Fresh", "Statement: b"),
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert [entity.title for entity in batch.entities] == ["Fresh"]
    assert _codes(batch, Severity.BLOCKING) == [IssueCode.IDENTITY_PARSE, IssueCode.IDENTITY_PARSE]
    assert [issue.entity_ref for issue in batch.issues] == ["'Data Quality'", "'Twice'"]


def test_unknown_label_inside_rich_text_stays_in_the_field() -> None:
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity(
                    "Data Quality",
                    "Statement: Data shall be checked on entry.",
                    "Key Benefits:",
                    Paragraph(text="fewer rejected flight plans", list_item=True),
                    "Rationale: Safety.",
                )
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)
    entity = batch.entities[0]

    assert [(item.text, item.list_item) for item in entity.fields["statement"].paragraphs] == [
        ("Data shall be checked on entry.", False),
        ("Key Benefits:", False),
        ("fewer rejected flight plans", True),
    ]
    assert entity.fields["rationale"].plain_text() == "Safety."
    assert _codes(batch) == [IssueCode.UNKNOWN_LABEL]
    assert batch.issues[0].severity is Severity.WARNING


def test_tables_under_an_entity_are_reported() -> None:
    section = _entity("Data Quality", "Statement: checked")
    section.tables = [[["Owner", "FMP"]]]
    tree = _tree(("Operational Needs", [section]))

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert batch.entities[0].fields["statement"].plain_text() == "checked"
    assert _codes(batch, Severity.WARNING) == [IssueCode.IGNORED_CONTENT]
    assert "table" in batch.issues[0].message


def test_identity_without_version_kind_mismatch_and_duplicates_are_blocking() -> None:
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity("No version", "Identity: on:idl/1", "Statement: a"),
                _entity("Wrong kind", "Identity: or:idl/2[1]", "Statement: b"),
                _entity("Wrong group", "Identity: on:flow/3[1]", "Statement: c"),
                _entity("Original", "Identity: on:idl/4[1]", "Statement: d"),
                _entity("Copy", "Identity: on:idl/4[2]", "Statement: e"),
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert [entity.title for entity in batch.entities] == ["Original"]
    assert _codes(batch, Severity.BLOCKING) == [
        IssueCode.IDENTITY_PARSE,
        IssueCode.IDENTITY_MISMATCH,
        IssueCode.IDENTITY_MISMATCH,
        IssueCode.DUPLICATE_IDENTITY,
    ]


def test_document_without_entity_lists_is_blocking() -> None:
    root = Section(level=0, title="", subsections=[Section(level=1, title="Introduction")])

    batch = DomainMapper().map(root, DraftingGroup.IDL)

    assert batch.entities == []
    assert _codes(batch) == [IssueCode.NO_ENTITIES]
    assert batch.issues[0].severity is Severity.BLOCKING


def test_missing_required_field_is_error_and_unknown_label_warns() -> None:
    tree = _tree(
        (
            "Operational Changes",
            [_entity("Migration", "Owner Notes:", "ignored text", "Visibility: nm", "Initial State: legacy")],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)
    entity = batch.entities[0]

    assert entity.fields["visibility"] == "NM"
    assert entity.fields["initial_state"].plain_text() == "legacy"
    assert _codes(batch, Severity.ERROR) == [IssueCode.MISSING_FIELD]
    assert batch.issues[-1].field == "purpose"
    warnings = _codes(batch, Severity.WARNING)
    assert IssueCode.UNKNOWN_LABEL in warnings
    assert IssueCode.IGNORED_CONTENT in warnings


def test_invalid_choice_is_error_and_default_applies() -> None:
    tree = _tree(("Changes", [_entity("Migration", "Purpose: move", "Visibility: everyone")]))

    batch = DomainMapper().map(tree, DraftingGroup.IDL)

    assert batch.entities[0].fields["visibility"] == "NETWORK"
    assert _codes(batch, Severity.ERROR) == [IssueCode.INVALID_VALUE]


def test_setup_references_resolve_with_notes() -> None:
    resolver = ReferenceResolver(
        DraftingGroup.IDL,
        setup_elements=[
            SetupElement(id=1, kind=SetupKind.STAKEHOLDER, name="Airspace Users"),
            SetupElement(id=2, kind=SetupKind.STAKEHOLDER, name="FMP"),
        ],
    )
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity(
                    "Data Quality",
                    "Statement: s",
                    "Impacts Stakeholders: airspace users [primary]; FMP",
                    "Impacts Data: None",
                )
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL, resolver)
    stakeholders = batch.entities[0].fields["impacts_stakeholders"]

    assert batch.issues == []
    assert [(ref.id, ref.name, ref.note) for ref in stakeholders] == [
        (1, "Airspace Users", "primary"),
        (2, "FMP", None),
    ]
    assert batch.entities[0].fields["impacts_data"] == []


def test_unresolved_setup_reference_follows_policy() -> None:
    tree = _tree(("Operational Needs", [_entity("Data Quality", "Statement: s", "Impacts Services: Flight Plan Service")]))

    strict = DomainMapper().map(tree, DraftingGroup.IDL)
    lenient = DomainMapper(unresolved_setup="create").map(tree, DraftingGroup.IDL)

    assert _codes(strict) == [IssueCode.UNRESOLVED_REFERENCE]
    assert strict.entities[0].fields["impacts_services"] == []
    assert lenient.issues == []
    pending = lenient.entities[0].fields["impacts_services"]
    assert [(ref.id, ref.name) for ref in pending] == [(None, "Flight Plan Service")]


def test_entity_reference_by_identity_and_title_drift() -> None:
    resolver = ReferenceResolver(DraftingGroup.IDL, entities=[_stored(EntityKind.ON, 7, "Shared Picture")])
    tree = _tree(
        (
            "Operational Requirements",
            [
                _entity(
                    "Core Infrastructure",
                    "Statement: s",
                    "Implements:",
                    Paragraph(text="Common Picture (on:idl/7)", list_item=True),
                )
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL, resolver)
    implements = batch.entities[0].relationships["implements"]

    assert [(ref.kind, ref.entity_id, ref.title) for ref in implements] == [(EntityKind.ON, 7, "Shared Picture")]
    assert _codes(batch) == [IssueCode.TITLE_DRIFT]
    assert batch.issues[0].severity is Severity.WARNING


def test_reference_to_new_entity_must_follow_its_heading() -> None:
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity("Child Need", "Statement: c", "Refines: Parent Need"),
                _entity("Parent Need", "Statement: p"),
                _entity("Grandchild", "Statement: g", "Refines: Parent Need"),
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL)
    child, parent, grandchild = batch.entities

    assert child.relationships["refines"] == []
    assert [issue.entity_ref for issue in batch.issues] == ["new ON 'Child Need'"]
    assert batch.issues[0].code is IssueCode.UNRESOLVED_REFERENCE
    assert batch.issues[0].severity is Severity.ERROR
    [reference] = grandchild.relationships["refines"]
    assert reference.is_new
    assert reference.local_key == parent.identity.local_key


def test_reference_kind_is_checked_against_relation_table() -> None:
    resolver = ReferenceResolver(DraftingGroup.IDL, entities=[_stored(EntityKind.OC, 3, "Migration")])
    tree = _tree(("Operational Needs", [_entity("Data Quality", "Statement: s", "Refines: Migration (oc:idl/3)")]))

    batch = DomainMapper().map(tree, DraftingGroup.IDL, resolver)

    assert _codes(batch) == [IssueCode.REFERENCE_KIND]
    assert batch.entities[0].relationships["refines"] == []


def test_hyperlink_to_other_anchor_is_advisory_warning() -> None:
    resolver = ReferenceResolver(DraftingGroup.IDL, entities=[_stored(EntityKind.ON, 7, "Shared Picture")])
    text = "Shared Picture (on:idl/7)"
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity(
                    "Data Quality",
                    "Statement: s",
                    "Refines:",
                    Paragraph(
                        text=text,
                        list_item=True,
                        links=[Link(text=text, target="#on_idl_8", char_start=0, char_end=len(text))],
                    ),
                )
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL, resolver)

    assert batch.entities[0].relationships["refines"][0].entity_id == 7
    assert _codes(batch) == [IssueCode.LINK_MISMATCH]
    assert batch.issues[0].severity is Severity.WARNING


def test_matching_inline_hyperlink_produces_no_warning() -> None:
    resolver = ReferenceResolver(DraftingGroup.IDL, entities=[_stored(EntityKind.ON, 7, "Shared Picture")])
    line = "Refines: Shared Picture (on:idl/7)"
    start = line.index("Shared")
    tree = _tree(
        (
            "Operational Needs",
            [
                _entity(
                    "Data Quality",
                    "Statement: s",
                    Paragraph(
                        text=line,
                        links=[Link(text=line[start:], target="#on_idl_7", char_start=start, char_end=len(line))],
                    ),
                )
            ],
        )
    )

    batch = DomainMapper().map(tree, DraftingGroup.IDL, resolver)

    assert batch.issues == []
    assert batch.entities[0].relationships["refines"][0].entity_id == 7
