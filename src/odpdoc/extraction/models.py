"""Generic, domain-free document tree shared by the extractor, mapper and generator.

JSON contract (``Section.to_dict``)::

    {
      "level": 1,
      "title": "Operational Needs",
      "path": ["iDL"],
      "anchor": "_Toc123" | null,
      "content": {
        "paragraphs": [
          {"text": "...", "list_item": false,
           "links": [{"text": "...", "target": "#on_idl_5", "char_start": 0, "char_end": 12}]}
        ],
        "links": [ ...all paragraph links... ],
        "tables": [[["cell", "cell"], ["cell", "cell"]]]
      },
      "subsections": [ ...same shape... ]
    }

``path`` lists the titles of all ancestors (root first, excluding the section
itself). The root section has level 0. The contract is internal and may change
between versions.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class Link:
    """Hyperlink embedded in a paragraph; ``target`` is ``#anchor`` or an external URL."""

    text: str
    target: str
    char_start: int
    char_end: int

    @property
    def anchor(self) -> str | None:
        if self.target.startswith("#"):
            return self.target[1:]
        return None

    def to_dict(self) -> dict[str, object]:
        return {"text": self.text, "target": self.target, "char_start": self.char_start, "char_end": self.char_end}


@dataclass(slots=True)
class Paragraph:
    text: str
    list_item: bool = False
    links: list[Link] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "list_item": self.list_item,
            "links": [link.to_dict() for link in self.links],
        }


@dataclass(slots=True)
class Section:
    level: int
    title: str
    path: list[str] = field(default_factory=list)
    anchor: str | None = None
    paragraphs: list[Paragraph] = field(default_factory=list)
    tables: list[list[list[str]]] = field(default_factory=list)
    subsections: list["Section"] = field(default_factory=list)

    @property
    def links(self) -> list[Link]:
        return [link for paragraph in self.paragraphs for link in paragraph.links]

    def to_dict(self) -> dict[str, object]:
        return {
            "level": self.level,
            "title": self.title,
            "path": list(self.path),
            "anchor": self.anchor,
            "content": {
                "paragraphs": [paragraph.to_dict() for paragraph in self.paragraphs],
                "links": [link.to_dict() for link in self.links],
                "tables": [[list(row) for row in table] for table in self.tables],
            },
            "subsections": [child.to_dict() for child in self.subsections],
        }


@dataclass(slots=True)
class ExtractionWarning:
    message: str
    location: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"message": self.message, "location": self.location}
