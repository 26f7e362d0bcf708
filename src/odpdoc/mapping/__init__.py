"""Domain mapping from generic document trees to ON/OR/OC change-requests."""

from .fields import FieldSpec, FieldType, entity_list_kind, field_specs, lookup_label
from .mapper import UNRESOLVED_SETUP_POLICIES, DomainMapper
from .references import ReferenceResolver, UnresolvedReference, split_entity_reference, split_setup_reference

__all__ = [
    "DomainMapper",
    "FieldSpec",
    "FieldType",
    "ReferenceResolver",
    "UNRESOLVED_SETUP_POLICIES",
    "UnresolvedReference",
    "entity_list_kind",
    "field_specs",
    "lookup_label",
    "split_entity_reference",
    "split_setup_reference",
]
