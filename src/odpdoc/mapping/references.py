"""Per-import lookup turning document reference text into stable identifiers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Callable, Iterable

from odpdoc.extraction.normalization import normalize_text, normalize_whitespace
from odpdoc.model.entities import (
    AnnotatedReference,
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    EntityReference,
    IssueCode,
    NewEntity,
    SetupKind,
)
from odpdoc.model.identity import IdentityParseError, anchor_for, format_identity, parse_reference
from odpdoc.store.repository import SetupElement, StoredEntity

logger = logging.getLogger(__name__)

# Trailing "(kind:group/id)"; parentheses without ':' and '/' stay part of the title.
_ENTITY_REF_RE = re.compile(r"^(?P<title>.*?)\s*\((?P<identity>[^()]*:[^()]*/[^()]*)\)$")
_SETUP_REF_RE = re.compile(r"^(?P<name>[^\[\]]*?)\s*(?:\[(?P<note>[^\[\]]*)\])?$")


@dataclass(frozen=True, slots=True)
class UnresolvedReference:
    text: str
    code: IssueCode
    reason: str


def split_entity_reference(text: str) -> tuple[str, str | None]:
    """Split ``Title (kind:group/id)`` into the title and the identity text."""

    cleaned = normalize_whitespace(text)
    match = _ENTITY_REF_RE.match(cleaned)
    if match is None:
        return cleaned, None
    return match.group("title").strip(), match.group("identity").strip()


def split_setup_reference(text: str) -> tuple[str, str | None]:
    """Split ``Name [note]`` into the name and the optional note."""

    cleaned = normalize_whitespace(text)
    match = _SETUP_REF_RE.match(cleaned)
    if match is None:
        return cleaned, None
    note = match.group("note")
    if note is not None:
        note = note.strip() or None
    return match.group("name").strip(), note


@dataclass(slots=True)
class _DeclaredEntity:
    marker: NewEntity
    title: str
    anchor: str | None


class ReferenceResolver:
    """Snapshot-backed resolver; build one per import call and discard it afterwards."""

    def __init__(
        self,
        scope: DraftingGroup,
        entities: Iterable[StoredEntity] = (),
        setup_elements: Iterable[SetupElement] = (),
        fetch_entity: Callable[[EntityIdentity], StoredEntity | None] | None = None,
    ) -> None:
        self._scope = scope
        self._fetch_entity = fetch_entity
        self._by_identity: dict[EntityIdentity, StoredEntity] = {}
        self._by_title: dict[str, list[StoredEntity]] = {}
        self._setup: dict[tuple[SetupKind, str], SetupElement] = {}
        self._declared: dict[str, list[_DeclaredEntity]] = {}
        self._declared_by_key: dict[int, _DeclaredEntity] = {}

        for stored in entities:
            key = stored.identity.without_version()
            self._by_identity[key] = stored
            self._by_title.setdefault(normalize_text(stored.title), []).append(stored)
        for element in setup_elements:
            self._setup[(element.kind, normalize_text(element.name))] = element

    @property
    def scope(self) -> DraftingGroup:
        return self._scope

    def declare_new(self, marker: NewEntity, title: str, anchor: str | None = None) -> None:
        """Make a new entity resolvable by title for the rest of the document."""

        declared = _DeclaredEntity(marker=marker, title=normalize_whitespace(title), anchor=anchor)
        self._declared.setdefault(normalize_text(title), []).append(declared)
        self._declared_by_key[marker.local_key] = declared

    def resolve_setup_element(
        self,
        kind: SetupKind,
        name: str,
        note: str | None = None,
    ) -> AnnotatedReference | UnresolvedReference:
        cleaned = normalize_whitespace(name)
        if not cleaned:
            return UnresolvedReference(text=name, code=IssueCode.INVALID_VALUE, reason="empty setup element name")

        element = self._setup.get((kind, normalize_text(cleaned)))
        if element is None:
            return UnresolvedReference(
                text=cleaned,
                code=IssueCode.UNRESOLVED_REFERENCE,
                reason=f"no {kind.value} named {cleaned!r}",
            )
        return AnnotatedReference(kind=kind, id=element.id, name=element.name, note=note)

    def resolve_entity_reference(
        self,
        text: str,
        allowed_kinds: tuple[EntityKind, ...] = tuple(EntityKind),
    ) -> EntityReference | UnresolvedReference:
        """Resolve ``Title (kind:group/id)`` or a bare ``Title``.

        The returned reference carries the canonical title: the stored title
        for existing entities, the heading text for entities new in this
        document.
        """

        title, identity_text = split_entity_reference(text)
        if identity_text is not None:
            reference = self._resolve_by_identity(text, identity_text)
        elif title:
            reference = self._resolve_by_title(title, allowed_kinds)
        else:
            return UnresolvedReference(text=text, code=IssueCode.INVALID_VALUE, reason="empty reference")

        if isinstance(reference, UnresolvedReference):
            return reference
        if reference.kind not in allowed_kinds:
            allowed = ", ".join(kind.code for kind in allowed_kinds)
            return UnresolvedReference(
                text=text,
                code=IssueCode.REFERENCE_KIND,
                reason=f"{reference.kind.code} cannot be referenced here (expected {allowed})",
            )
        return reference

    def anchor_of(self, reference: EntityReference) -> str | None:
        """Heading anchor a live hyperlink to ``reference`` is expected to target."""

        if reference.entity_id is not None:
            return anchor_for(
                EntityIdentity(kind=reference.kind, group=reference.group, entity_id=reference.entity_id)
            )
        if reference.local_key is None:
            return None
        declared = self._declared_by_key.get(reference.local_key)
        return declared.anchor if declared is not None else None

    def _resolve_by_identity(self, text: str, identity_text: str) -> EntityReference | UnresolvedReference:
        try:
            identity = parse_reference(identity_text)
        except IdentityParseError as exc:
            return UnresolvedReference(text=text, code=IssueCode.INVALID_VALUE, reason=exc.reason)

        stored = self._lookup_identity(identity)
        if stored is None:
            return UnresolvedReference(
                text=text,
                code=IssueCode.UNRESOLVED_REFERENCE,
                reason=f"{format_identity(identity)} does not exist",
            )
        return EntityReference(
            kind=identity.kind,
            group=identity.group,
            entity_id=identity.entity_id,
            title=stored.title,
        )

    def _lookup_identity(self, identity: EntityIdentity) -> StoredEntity | None:
        if identity in self._by_identity:
            return self._by_identity[identity]
        if identity.group is self._scope or self._fetch_entity is None:
            return None

        logger.debug("Resolving cross-scope reference %s", format_identity(identity))
        stored = self._fetch_entity(identity)
        if stored is not None:
            self._by_identity[identity] = stored
        return stored

    def _resolve_by_title(
        self,
        title: str,
        allowed_kinds: tuple[EntityKind, ...],
    ) -> EntityReference | UnresolvedReference:
        key = normalize_text(title)

        declared = [item for item in self._declared.get(key, []) if item.marker.kind in allowed_kinds]
        if len(declared) > 1:
            return UnresolvedReference(
                text=title,
                code=IssueCode.UNRESOLVED_REFERENCE,
                reason=f"title {title!r} matches {len(declared)} new entities in this document",
            )
        if declared:
            marker = declared[0].marker
            return EntityReference(
                kind=marker.kind,
                group=marker.group,
                entity_id=None,
                title=declared[0].title,
                local_key=marker.local_key,
            )

        stored = [item for item in self._by_title.get(key, []) if item.identity.kind in allowed_kinds]
        if len(stored) > 1:
            candidates = ", ".join(format_identity(item.identity, include_version=False) for item in stored)
            return UnresolvedReference(
                text=title,
                code=IssueCode.UNRESOLVED_REFERENCE,
                reason=f"title {title!r} is ambiguous ({candidates}); add the identity in parentheses",
            )
        if not stored:
            return UnresolvedReference(
                text=title,
                code=IssueCode.UNRESOLVED_REFERENCE,
                reason=(
                    f"no entity titled {title!r} in scope {self._scope.value}; "
                    "new entities can only be referenced after their own heading"
                ),
            )

        identity = stored[0].identity
        return EntityReference(
            kind=identity.kind,
            group=identity.group,
            entity_id=identity.entity_id,
            title=stored[0].title,
        )
