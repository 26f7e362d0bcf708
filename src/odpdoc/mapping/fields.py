"""Field-label and entity-list tables shared by the mapper and the generator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re

from odpdoc.extraction.normalization import normalize_text, strip_numbering
from odpdoc.model.entities import EntityKind, SetupKind

IDENTITY_LABEL = "Identity"
EMPTY_LIST_MARKERS = {"none", "-", "n/a"}

LIST_HEADINGS: dict[EntityKind, str] = {
    EntityKind.ON: "Operational Needs",
    EntityKind.OR: "Operational Requirements",
    EntityKind.OC: "Operational Changes",
}

_LIST_PATTERNS: dict[EntityKind, re.Pattern[str]] = {
    EntityKind.ON: re.compile(r"(?:operational\s+)?needs(?:\s*\(ons?\))?"),
    EntityKind.OR: re.compile(r"(?:operational\s+)?requirements(?:\s*\(ors?\))?"),
    EntityKind.OC: re.compile(r"(?:operational\s+)?changes(?:\s*\(ocs?\))?"),
}


class FieldType(Enum):
    RICH_TEXT = "rich_text"
    PLAIN = "plain"
    SETUP_REFERENCES = "setup_references"
    ENTITY_REFERENCES = "entity_references"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    label: str
    field_type: FieldType
    required: bool = False
    setup_kind: SetupKind | None = None
    target_kinds: tuple[EntityKind, ...] = ()
    choices: tuple[str, ...] = ()
    default: str = ""

    @property
    def is_relationship(self) -> bool:
        return self.field_type is FieldType.ENTITY_REFERENCES

    @property
    def is_multiline(self) -> bool:
        return self.field_type is not FieldType.PLAIN


def _rich(name: str, label: str, *, required: bool = False) -> FieldSpec:
    return FieldSpec(name=name, label=label, field_type=FieldType.RICH_TEXT, required=required)


def _setup(name: str, label: str, kind: SetupKind) -> FieldSpec:
    return FieldSpec(name=name, label=label, field_type=FieldType.SETUP_REFERENCES, setup_kind=kind)


def _relation(name: str, label: str, *targets: EntityKind) -> FieldSpec:
    return FieldSpec(name=name, label=label, field_type=FieldType.ENTITY_REFERENCES, target_kinds=targets)


_IMPACTS = (
    _setup("impacts_stakeholders", "Impacts Stakeholders", SetupKind.STAKEHOLDER),
    _setup("impacts_data", "Impacts Data", SetupKind.DATA),
    _setup("impacts_services", "Impacts Services", SetupKind.SERVICE),
    _setup("references", "References", SetupKind.DOCUMENT),
)

_FIELDS: dict[EntityKind, tuple[FieldSpec, ...]] = {
    EntityKind.ON: (
        _rich("statement", "Statement", required=True),
        _rich("rationale", "Rationale"),
        _rich("flows", "Flows"),
        _rich("private_notes", "Private Notes"),
        _relation("refines", "Refines", EntityKind.ON),
        *_IMPACTS,
    ),
    EntityKind.OR: (
        _rich("statement", "Statement", required=True),
        _rich("rationale", "Rationale"),
        _rich("flows", "Flows"),
        _rich("private_notes", "Private Notes"),
        _relation("refines", "Refines", EntityKind.ON, EntityKind.OR),
        _relation("implements", "Implements", EntityKind.ON),
        _relation("depends_on", "Depends On", EntityKind.OR),
        *_IMPACTS,
    ),
    EntityKind.OC: (
        _rich("purpose", "Purpose", required=True),
        _rich("initial_state", "Initial State"),
        _rich("final_state", "Final State"),
        _rich("details", "Details"),
        _rich("private_notes", "Private Notes"),
        FieldSpec(
            name="visibility",
            label="Visibility",
            field_type=FieldType.PLAIN,
            choices=("NM", "NETWORK"),
            default="NETWORK",
        ),
        _relation("satisfies", "Satisfies", EntityKind.OR),
        _relation("supersedes", "Supersedes", EntityKind.OR),
        _relation("depends_on", "Depends On", EntityKind.OC),
        _setup("references", "References", SetupKind.DOCUMENT),
    ),
}

_BY_LABEL: dict[EntityKind, dict[str, FieldSpec]] = {
    kind: {normalize_text(spec.label): spec for spec in specs} for kind, specs in _FIELDS.items()
}


def field_specs(kind: EntityKind) -> tuple[FieldSpec, ...]:
    return _FIELDS[kind]


def lookup_label(kind: EntityKind, label: str) -> FieldSpec | None:
    return _BY_LABEL[kind].get(normalize_text(label))


def entity_list_kind(title: str) -> EntityKind | None:
    """Return the entity kind whose list heading ``title`` names, if any."""

    normalized = normalize_text(strip_numbering(title))
    for kind, pattern in _LIST_PATTERNS.items():
        if pattern.fullmatch(normalized):
            return kind
    return None
