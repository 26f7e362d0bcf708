from __future__ import annotations

from io import BytesIO
from pathlib import Path

from docx import Document
import pytest

from odpdoc.config import LoopSettings
from odpdoc.extraction.docx_extractor import ExtractionError
from odpdoc.loop import DocumentLoop
from odpdoc.model.entities import (
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    IssueCode,
    RichParagraph,
    RichText,
    SetupKind,
)
from odpdoc.store.content import EntityContent
from odpdoc.store.repository import RecordStore, StoreError, StoreTransaction

Entity = tuple[str, list[str]]


def _document(lists: dict[str, list[Entity]], *, folder: str | None = None) -> bytes:
    document = Document()
    document.add_paragraph("iDL", style="Title")
    base = 1
    if folder:
        document.add_heading(folder, level=1)
        base = 2
    for heading, entities in lists.items():
        document.add_heading(heading, level=base)
        for title, lines in entities:
            document.add_heading(title, level=base + 1)
            for line in lines:
                if line.startswith("* "):
                    document.add_paragraph(line[2:], style="List Bullet")
                else:
                    document.add_paragraph(line)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _content(statement: str) -> EntityContent:
    return EntityContent(fields={"statement": RichText((RichParagraph(statement),))})


def _seed_or_512_at_version_5(store: RecordStore) -> EntityIdentity:
    with store.transaction("seed") as tx:
        for index in range(1, 513):
            created = tx.create_entity(EntityKind.OR, DraftingGroup.IDL, f"Requirement {index}", _content("x"))
        identity = created.identity.without_version()
        for version in range(1, 5):
            tx.update_entity(identity, "Core Infrastructure", _content(f"v{version + 1}"), expected_version=version)
    return identity


def test_new_on_is_created_without_errors(tmp_path: Path) -> None:
    data = _document(
        {"Operational Needs": [("Data Quality", ["Statement: Data shall be checked on entry."])]},
    )

    with RecordStore(tmp_path / "records.db") as store:
        result = DocumentLoop(store).import_document(data, "idl")
        stored = store.fetch_by_scope(DraftingGroup.IDL)

    assert result.committed
    assert result.errors == []
    assert len(result.created) == 1
    assert result.created[0].kind is EntityKind.ON
    assert result.updated == []
    assert [(item.title, item.identity.version_id) for item in stored] == [("Data Quality", 1)]
    assert stored[0].content.fields["statement"].plain_text() == "Data shall be checked on entry."


def test_version_conflict_rolls_back_whole_batch(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Needs": [("Brand New Need", ["Statement: Would be valid on its own."])],
            "Operational Requirements": [
                ("Core Infrastructure", ["Identity: or:idl/512[3]", "Statement: Edited against version 3."])
            ],
        }
    )

    with RecordStore(tmp_path / "records.db") as store:
        identity = _seed_or_512_at_version_5(store)
        result = DocumentLoop(store).import_document(data, "idl")
        current = store.fetch_by_identity(identity)
        needs = store.fetch_by_scope(DraftingGroup.IDL, EntityKind.ON)

    assert not result.committed
    assert result.updated == []
    assert result.created == []
    assert [issue.code for issue in result.errors] == [IssueCode.VERSION_CONFLICT]
    assert result.errors[0].entity_ref == "or:idl/512[3]"
    assert current is not None
    assert current.identity.version_id == 5
    assert current.content.fields["statement"].plain_text() == "v5"
    assert needs == []


def test_force_overrides_version_conflict(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Requirements": [
                ("Core Infrastructure", ["Identity: or:idl/512[3]", "Statement: Edited against version 3."])
            ],
        }
    )

    with RecordStore(tmp_path / "records.db") as store:
        identity = _seed_or_512_at_version_5(store)
        result = DocumentLoop(store).import_document(data, "idl", force=True)
        current = store.fetch_by_identity(identity)

    assert result.committed
    assert result.errors == []
    assert [issue.code for issue in result.warnings] == [IssueCode.VERSION_CONFLICT]
    assert len(result.updated) == 1
    assert result.updated[0].new_version_id > 5
    assert current is not None
    assert current.identity.version_id == result.updated[0].new_version_id
    assert current.content.fields["statement"].plain_text() == "Edited against version 3."


def test_blocking_entity_rolls_back_and_repeats_identically(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Needs": [
                ("Need One", ["Statement: one"]),
                ("Need Two", ["Statement: two"]),
                ("Need Three", ["Identity: on:idl/three[1]", "Statement: three"]),
                ("Need Four", ["Statement: four"]),
                ("Need Five", ["Statement: five"]),
            ]
        }
    )

    with RecordStore(tmp_path / "records.db") as store:
        first = DocumentLoop(store).import_document(data, "idl")
        second = DocumentLoop(store).import_document(data, "idl")
        stored = store.fetch_by_scope(DraftingGroup.IDL)

    assert not first.committed
    assert first.created == []
    assert [issue.code for issue in first.errors] == [IssueCode.IDENTITY_PARSE]
    assert [issue.to_dict() for issue in second.errors] == [issue.to_dict() for issue in first.errors]
    assert stored == []


def test_greedy_collection_reports_every_problem(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Requirements": [
                ("Missing Statement", ["Rationale: no statement here"]),
                ("Ghost", ["Identity: or:idl/999[1]", "Statement: not stored"]),
                ("Core Infrastructure", ["Identity: or:idl/512[4]", "Statement: stale"]),
            ]
        }
    )

    with RecordStore(tmp_path / "records.db") as store:
        _seed_or_512_at_version_5(store)
        result = DocumentLoop(store).import_document(data, "idl")

    assert not result.committed
    assert [issue.code for issue in result.errors] == [
        IssueCode.MISSING_FIELD,
        IssueCode.NOT_FOUND,
        IssueCode.VERSION_CONFLICT,
    ]


def test_unchanged_update_follows_noop_policy(tmp_path: Path) -> None:
    with RecordStore(tmp_path / "records.db") as store:
        with store.transaction("seed") as tx:
            tx.create_entity(
                EntityKind.ON,
                DraftingGroup.IDL,
                "Data Quality",
                EntityContent(fields={"statement": RichText((RichParagraph("Same text."),))}),
            )
        data = _document(
            {"Operational Needs": [("Data Quality", ["Identity: on:idl/1[1]", "Statement: Same   text."])]}
        )

        skipped = DocumentLoop(store).import_document(data, "idl")
        bumped = DocumentLoop(store, LoopSettings(noop_updates="bump")).import_document(data, "idl")
        history = store.history(EntityIdentity(kind=EntityKind.ON, group=DraftingGroup.IDL, entity_id=1))

    assert skipped.committed
    assert skipped.updated == []
    assert [identity.entity_id for identity in skipped.skipped] == [1]
    assert bumped.committed
    assert [item.new_version_id for item in bumped.updated] == [2]
    assert len(history) == 2


def test_new_entities_can_reference_earlier_new_entities(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Needs": [("Parent Need", ["Statement: parent"])],
            "Operational Requirements": [
                ("Child Requirement", ["Statement: child", "Implements:", "* Parent Need"]),
            ],
        },
        folder="Data Management",
    )

    with RecordStore(tmp_path / "records.db") as store:
        result = DocumentLoop(store).import_document(data, "idl")
        [requirement] = store.fetch_by_scope(DraftingGroup.IDL, EntityKind.OR)
        [need] = store.fetch_by_scope(DraftingGroup.IDL, EntityKind.ON)

    assert result.committed
    assert requirement.content.path == ["Data Management"]
    [reference] = requirement.content.relationships["implements"]
    assert (reference.kind, reference.entity_id) == (EntityKind.ON, need.identity.entity_id)


def test_unresolved_setup_create_policy_creates_inside_transaction(tmp_path: Path) -> None:
    data = _document(
        {
            "Operational Needs": [
                ("Need A", ["Statement: a", "Impacts Stakeholders: Airspace Users [main]"]),
                ("Need B", ["Statement: b", "Impacts Stakeholders: airspace users"]),
            ]
        }
    )

    with RecordStore(tmp_path / "records.db") as store:
        strict = DocumentLoop(store).import_document(data, "idl")
        lenient = DocumentLoop(store, LoopSettings(unresolved_setup="create")).import_document(data, "idl")
        elements = store.list_setup_elements(SetupKind.STAKEHOLDER)
        needs = store.fetch_by_scope(DraftingGroup.IDL)

    assert not strict.committed
    assert [issue.code for issue in strict.errors] == [IssueCode.UNRESOLVED_REFERENCE] * 2
    assert lenient.committed
    assert [(ref.kind, ref.name) for ref in lenient.created_setup_elements] == [
        (SetupKind.STAKEHOLDER, "Airspace Users")
    ]
    assert IssueCode.SETUP_CREATED in [issue.code for issue in lenient.warnings]
    assert [element.name for element in elements] == ["Airspace Users"]
    ids = {ref.id for need in needs for ref in need.content.fields["impacts_stakeholders"]}
    assert ids == {elements[0].id}


def test_unknown_scope_and_corrupt_input_fail_before_mapping(tmp_path: Path) -> None:
    with RecordStore(tmp_path / "records.db") as store:
        loop = DocumentLoop(store)
        with pytest.raises(ValueError, match="drafting group"):
            loop.import_document(_document({"Needs": []}), "nowhere")
        with pytest.raises(ExtractionError):
            loop.import_document(b"PK\x03\x04garbage", "idl")


def test_store_failure_rolls_back_and_propagates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    data = _document(
        {"Operational Needs": [("Need One", ["Statement: one"]), ("Need Two", ["Statement: two"])]},
    )

    with RecordStore(tmp_path / "records.db") as store:
        original = StoreTransaction.create_entity
        calls: list[str] = []

        def failing_create(self, kind, group, title, content):
            calls.append(title)
            if title == "Need Two":
                raise StoreError("disk full")
            return original(self, kind, group, title, content)

        monkeypatch.setattr(StoreTransaction, "create_entity", failing_create)
        with pytest.raises(StoreError, match="disk full"):
            DocumentLoop(store).import_document(data, "idl")
        monkeypatch.undo()

        stored = store.fetch_by_scope(DraftingGroup.IDL)
        with store.transaction("after") as tx:
            assert tx.is_active

    assert calls == ["Need One", "Need Two"]
    assert stored == []
