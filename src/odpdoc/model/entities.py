"""Canonical domain structures shared by the import and export stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EntityKind(Enum):
    ON = "on"
    OR = "or"
    OC = "oc"

    @property
    def code(self) -> str:
        return self.value.upper()

    @property
    def display_name(self) -> str:
        return _KIND_DISPLAY[self]


_KIND_DISPLAY: dict[EntityKind, str] = {
    EntityKind.ON: "Operational Need",
    EntityKind.OR: "Operational Requirement",
    EntityKind.OC: "Operational Change",
}


class DraftingGroup(Enum):
    """Business groups scoping entity ids; values are the lowercase identity tokens."""

    FOUR_DT = "4dt"
    AIRPORT = "airport"
    ASM_ATFCM = "asm_atfcm"
    CRISIS_FAAS = "crisis_faas"
    FLOW = "flow"
    IDL = "idl"
    NM_B2B = "nm_b2b"
    NMUI = "nmui"
    PERF = "perf"
    RRT = "rrt"
    TCF = "tcf"

    @property
    def display_name(self) -> str:
        return _GROUP_DISPLAY[self]

    @classmethod
    def from_token(cls, token: str) -> "DraftingGroup":
        for group in cls:
            if group.value == token:
                return group
        raise ValueError(f"Unknown drafting group: {token!r}")


_GROUP_DISPLAY: dict[DraftingGroup, str] = {
    DraftingGroup.FOUR_DT: "4D-Trajectory",
    DraftingGroup.AIRPORT: "Airport",
    DraftingGroup.ASM_ATFCM: "ASM / ATFCM Integration",
    DraftingGroup.CRISIS_FAAS: "Crisis and FAAS",
    DraftingGroup.FLOW: "Flow",
    DraftingGroup.IDL: "iDL",
    DraftingGroup.NM_B2B: "NM B2B",
    DraftingGroup.NMUI: "NMUI",
    DraftingGroup.PERF: "Performance",
    DraftingGroup.RRT: "Rerouting",
    DraftingGroup.TCF: "TCF",
}


class SetupKind(Enum):
    """Non-versioned reference entities that ON/OR/OC records point to."""

    STAKEHOLDER = "stakeholder"
    DATA = "data"
    SERVICE = "service"
    DOCUMENT = "document"


class Severity(Enum):
    BLOCKING = "blocking"
    ERROR = "error"
    WARNING = "warning"

    @property
    def prevents_commit(self) -> bool:
        return self is not Severity.WARNING


class IssueCode(Enum):
    NO_ENTITIES = "no-entities"
    EMPTY_TITLE = "empty-title"
    IDENTITY_PARSE = "identity-parse"
    IDENTITY_MISMATCH = "identity-mismatch"
    DUPLICATE_IDENTITY = "duplicate-identity"
    MISSING_FIELD = "missing-field"
    INVALID_VALUE = "invalid-value"
    UNKNOWN_LABEL = "unknown-label"
    IGNORED_CONTENT = "ignored-content"
    UNRESOLVED_REFERENCE = "unresolved-reference"
    REFERENCE_KIND = "reference-kind"
    TITLE_DRIFT = "title-drift"
    LINK_MISMATCH = "link-mismatch"
    VERSION_CONFLICT = "version-conflict"
    NOT_FOUND = "not-found"
    SETUP_CREATED = "setup-created"
    DEPENDENCY_FAILED = "dependency-failed"


@dataclass(frozen=True, slots=True)
class EntityIdentity:
    """Names one logical entity; ``version_id`` is set only when an update is asserted."""

    kind: EntityKind
    group: DraftingGroup
    entity_id: int
    version_id: int | None = None

    def without_version(self) -> "EntityIdentity":
        return EntityIdentity(kind=self.kind, group=self.group, entity_id=self.entity_id)


@dataclass(frozen=True, slots=True)
class NewEntity:
    """Marker for an entity the document creates; ``local_key`` is its batch ordinal."""

    kind: EntityKind
    group: DraftingGroup
    local_key: int


@dataclass(frozen=True, slots=True)
class EntityReference:
    """Pointer to another ON/OR/OC, either stored (``entity_id``) or new in this batch."""

    kind: EntityKind
    group: DraftingGroup
    entity_id: int | None
    title: str
    local_key: int | None = None

    @property
    def is_new(self) -> bool:
        return self.entity_id is None


@dataclass(frozen=True, slots=True)
class AnnotatedReference:
    """Setup element pointer with an optional free-text note.

    ``id`` is None when the element does not exist yet and the import is
    allowed to create it.
    """

    kind: SetupKind
    id: int | None
    name: str
    note: str | None = None


@dataclass(frozen=True, slots=True)
class RichParagraph:
    text: str
    list_item: bool = False


@dataclass(frozen=True, slots=True)
class RichText:
    """Best-effort rich text: ordered paragraphs keeping only the list-item flag."""

    paragraphs: tuple[RichParagraph, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(paragraph.text.strip() for paragraph in self.paragraphs)

    def plain_text(self) -> str:
        return "\n".join(paragraph.text for paragraph in self.paragraphs)

    def to_json(self) -> list[dict[str, object]]:
        return [{"text": paragraph.text, "list_item": paragraph.list_item} for paragraph in self.paragraphs]

    @classmethod
    def from_json(cls, payload: list[dict[str, object]] | None) -> "RichText":
        if not payload:
            return cls()
        return cls(
            tuple(
                RichParagraph(text=str(item.get("text", "")), list_item=bool(item.get("list_item", False)))
                for item in payload
            )
        )


FieldValue = str | RichText | list[AnnotatedReference]


@dataclass(slots=True)
class StructuredEntity:
    """One entity change-request recovered from a document."""

    identity: EntityIdentity | NewEntity
    kind: EntityKind
    title: str
    path: list[str] = field(default_factory=list)
    fields: dict[str, FieldValue] = field(default_factory=dict)
    relationships: dict[str, list[EntityReference]] = field(default_factory=dict)
    anchor: str | None = None

    @property
    def is_new(self) -> bool:
        return isinstance(self.identity, NewEntity)


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    severity: Severity
    code: IssueCode
    entity_ref: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "severity": self.severity.value,
            "code": self.code.value,
            "entity": self.entity_ref,
            "field": self.field,
            "message": self.message,
        }


@dataclass(slots=True)
class ImportBatch:
    """Mapper output handed to the importer; lives for one import call."""

    entities: list[StructuredEntity] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def has_blocking_issues(self) -> bool:
        return any(issue.severity.prevents_commit for issue in self.issues)


@dataclass(frozen=True, slots=True)
class UpdatedEntity:
    identity: EntityIdentity
    new_version_id: int


@dataclass(slots=True)
class ImportResult:
    created: list[EntityIdentity] = field(default_factory=list)
    updated: list[UpdatedEntity] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    skipped: list[EntityIdentity] = field(default_factory=list)
    created_setup_elements: list[AnnotatedReference] = field(default_factory=list)
    committed: bool = False

    def to_dict(self) -> dict[str, object]:
        from odpdoc.model.identity import format_identity

        return {
            "committed": self.committed,
            "created": [format_identity(identity) for identity in self.created],
            "updated": [
                {"identity": format_identity(item.identity), "new_version_id": item.new_version_id}
                for item in self.updated
            ],
            "skipped": [format_identity(identity) for identity in self.skipped],
            "created_setup_elements": [
                {"kind": ref.kind.value, "id": ref.id, "name": ref.name} for ref in self.created_setup_elements
            ],
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }
