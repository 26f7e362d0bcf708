"""Domain model and identity codec."""

from .entities import (
    AnnotatedReference,
    DraftingGroup,
    EntityIdentity,
    EntityKind,
    EntityReference,
    ImportBatch,
    ImportResult,
    IssueCode,
    NewEntity,
    RichParagraph,
    RichText,
    SetupKind,
    Severity,
    StructuredEntity,
    UpdatedEntity,
    ValidationIssue,
)
from .identity import IdentityParseError, format_identity, parse_identity, parse_reference

__all__ = [
    "AnnotatedReference",
    "DraftingGroup",
    "EntityIdentity",
    "EntityKind",
    "EntityReference",
    "IdentityParseError",
    "ImportBatch",
    "ImportResult",
    "IssueCode",
    "NewEntity",
    "RichParagraph",
    "RichText",
    "SetupKind",
    "Severity",
    "StructuredEntity",
    "UpdatedEntity",
    "ValidationIssue",
    "format_identity",
    "parse_identity",
    "parse_reference",
]
