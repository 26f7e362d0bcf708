"""JSON payload stored with every item version."""

from __future__ import annotations

from dataclasses import dataclass, field
import json

from odpdoc.model.entities import (
    AnnotatedReference,
    DraftingGroup,
    EntityKind,
    EntityReference,
    FieldValue,
    RichText,
    SetupKind,
)


@dataclass(slots=True)
class EntityContent:
    """Versioned content of one entity; relationship targets always carry stored ids."""

    path: list[str] = field(default_factory=list)
    fields: dict[str, FieldValue] = field(default_factory=dict)
    relationships: dict[str, list[EntityReference]] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "path": list(self.path),
                "fields": {name: _encode_value(value) for name, value in self.fields.items()},
                "relationships": {
                    name: [_encode_entity_reference(ref) for ref in refs] for name, refs in self.relationships.items()
                },
            },
            ensure_ascii=False,
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str) -> "EntityContent":
        payload = json.loads(raw)
        return cls(
            path=[str(segment) for segment in payload.get("path", [])],
            fields={name: _decode_value(value) for name, value in payload.get("fields", {}).items()},
            relationships={
                name: [_decode_entity_reference(item) for item in items]
                for name, items in payload.get("relationships", {}).items()
            },
        )


def _encode_value(value: FieldValue) -> object:
    if isinstance(value, RichText):
        return {"rich_text": value.to_json()}
    if isinstance(value, str):
        return value
    return {
        "setup_references": [
            {"kind": ref.kind.value, "id": ref.id, "name": ref.name, "note": ref.note} for ref in value
        ]
    }


def _decode_value(value: object) -> FieldValue:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and "rich_text" in value:
        return RichText.from_json(value["rich_text"])
    if isinstance(value, dict) and "setup_references" in value:
        return [
            AnnotatedReference(
                kind=SetupKind(item["kind"]),
                id=item.get("id"),
                name=str(item.get("name") or ""),
                note=item.get("note"),
            )
            for item in value["setup_references"]
        ]
    raise ValueError(f"Unrecognized stored field value: {value!r}")


def _encode_entity_reference(ref: EntityReference) -> dict[str, object]:
    if ref.entity_id is None:
        raise ValueError(f"Reference to unsaved entity {ref.title!r} cannot be stored")
    return {"kind": ref.kind.value, "group": ref.group.value, "entity_id": ref.entity_id}


def _decode_entity_reference(item: dict[str, object]) -> EntityReference:
    return EntityReference(
        kind=EntityKind(item["kind"]),
        group=DraftingGroup.from_token(str(item["group"])),
        entity_id=int(item["entity_id"]),
        title="",
    )
