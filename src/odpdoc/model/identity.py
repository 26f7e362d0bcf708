"""Strict codec for the ``kind:group/entityId[versionId]`` identity grammar."""

from __future__ import annotations

from dataclasses import dataclass
import re

from odpdoc.model.entities import DraftingGroup, EntityIdentity, EntityKind, NewEntity

# Splits the text into its four slots; each slot is validated separately so the
# error names the part that is wrong.
_SHAPE_RE = re.compile(r"(?P<kind>[^:]*):(?P<group>[^/]*)/(?P<entity_id>[^\[\]]*)(?P<version>\[[^\[\]]*\])?")
_POSITIVE_INT_RE = re.compile(r"[1-9][0-9]*")
_KIND_BY_TOKEN = {kind.value: kind for kind in EntityKind}
_GROUP_BY_TOKEN = {group.value: group for group in DraftingGroup}


@dataclass(slots=True)
class IdentityParseError(Exception):
    """Raised when text does not follow the identity grammar exactly."""

    text: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid identity {self.text!r}: {self.reason}"


def parse_identity(text: str) -> EntityIdentity:
    """Parse a full identity; the version bracket is optional."""

    match = _SHAPE_RE.fullmatch(text)
    if match is None:
        raise IdentityParseError(text, "expected kind:group/entityId[versionId]")

    kind = _KIND_BY_TOKEN.get(match.group("kind"))
    if kind is None:
        raise IdentityParseError(text, f"kind must be one of {', '.join(sorted(_KIND_BY_TOKEN))}")

    group = _GROUP_BY_TOKEN.get(match.group("group"))
    if group is None:
        raise IdentityParseError(text, f"unknown group {match.group('group')!r}")

    raw_entity_id = match.group("entity_id")
    if not _POSITIVE_INT_RE.fullmatch(raw_entity_id):
        raise IdentityParseError(text, "entityId must be a positive integer")

    version_id: int | None = None
    raw_version = match.group("version")
    if raw_version is not None:
        inner = raw_version[1:-1]
        if not _POSITIVE_INT_RE.fullmatch(inner):
            raise IdentityParseError(text, "versionId must be a positive integer")
        version_id = int(inner)

    return EntityIdentity(kind=kind, group=group, entity_id=int(raw_entity_id), version_id=version_id)


def parse_reference(text: str) -> EntityIdentity:
    """Parse a version-agnostic reference (``kind:group/entityId``)."""

    identity = parse_identity(text)
    if identity.version_id is not None:
        raise IdentityParseError(text, "references must not carry a versionId")
    return identity


def format_identity(identity: EntityIdentity, include_version: bool = True) -> str:
    text = f"{identity.kind.value}:{identity.group.value}/{identity.entity_id}"
    if include_version and identity.version_id is not None:
        text += f"[{identity.version_id}]"
    return text


def anchor_for(identity: EntityIdentity) -> str:
    """Bookmark name used for an entity heading in generated documents."""

    return f"{identity.kind.value}_{identity.group.value}_{identity.entity_id}"


def describe(identity: EntityIdentity | NewEntity, title: str) -> str:
    """Human label used in validation issues."""

    if isinstance(identity, NewEntity):
        return f"new {identity.kind.code} {title!r}"
    return format_identity(identity)
