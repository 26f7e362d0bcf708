"""Word (.docx) adapter turning the body into a generic heading tree."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import logging
from pathlib import Path
import re
from zipfile import BadZipFile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph as DocxParagraph
from docx.text.run import Run
from lxml import etree

from odpdoc.extraction.models import ExtractionWarning, Link, Paragraph, Section
from odpdoc.extraction.normalization import normalize_whitespace

logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_HEADING_STYLE_RE = re.compile(r"^heading\s*([1-9])$", re.IGNORECASE)
_TOC_STYLE_RE = re.compile(r"^toc(\s+\d+|\s+heading)?$", re.IGNORECASE)
_IGNORED_BOOKMARKS = {"_GoBack"}
# Inline containers whose runs still belong to the visible paragraph text.
_SKIPPED_INLINE_TAGS = {qn("w:pPr"), qn("w:rPr"), qn("w:del"), qn("w:moveFrom")}


@dataclass(slots=True)
class ExtractionError(Exception):
    """Fatal failure: the payload is not a readable Word document."""

    message: str

    def __str__(self) -> str:
        return self.message


class DocxExtractor:
    """Extract the heading hierarchy, paragraphs and links of a Word document."""

    def supports(self, sniffed_bytes: bytes) -> bool:
        return sniffed_bytes.startswith(_ZIP_MAGIC)

    def extract_path(self, path: str | Path) -> tuple[Section, list[ExtractionWarning]]:
        source = Path(path)
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise ExtractionError(f"Failed to read document {source}: {exc}") from exc
        return self.extract(data)

    def extract(self, data: bytes) -> tuple[Section, list[ExtractionWarning]]:
        if not data:
            raise ExtractionError("Document is empty")
        if not self.supports(data[:4]):
            raise ExtractionError("Unsupported document format: expected a .docx (zip) payload")

        try:
            document = Document(BytesIO(data))
        except (PackageNotFoundError, BadZipFile, KeyError, ValueError, etree.XMLSyntaxError) as exc:
            raise ExtractionError(f"Unreadable Word document: {exc}") from exc

        warnings: list[ExtractionWarning] = []
        root_title = normalize_whitespace(document.core_properties.title or "")
        root = Section(level=0, title=root_title)
        stack: list[Section] = [root]

        for element in self._iter_block_elements(document.element.body):
            if element.tag == qn("w:tbl"):
                stack[-1].tables.append(self._table_rows(Table(element, document)))
                continue

            paragraph = DocxParagraph(element, document)
            style_name = self._style_name(paragraph)

            if style_name and _TOC_STYLE_RE.match(style_name):
                logger.debug("Dropping table-of-contents paragraph styled %s", style_name)
                continue

            level = self._heading_level(paragraph, style_name)
            if level is not None:
                self._open_section(stack, paragraph, level, warnings)
                continue

            extracted = self._extract_paragraph(paragraph, style_name)
            if extracted is None:
                continue
            if self._is_toc_entry(extracted):
                logger.debug("Dropping table-of-contents entry %r", extracted.text)
                continue

            if style_name == "Title" and stack[-1] is root and not root.paragraphs and not root.subsections:
                root.title = extracted.text
                continue

            stack[-1].paragraphs.append(extracted)

        return root, warnings

    def _iter_block_elements(self, container: etree._Element):
        for child in container.iterchildren():
            if child.tag in (qn("w:p"), qn("w:tbl")):
                yield child
            elif child.tag == qn("w:sdt"):
                for content in child.iterchildren(qn("w:sdtContent")):
                    yield from self._iter_block_elements(content)

    def _table_rows(self, table: Table) -> list[list[str]]:
        """Plain cell text per row; merged cells repeat their text in each grid column."""

        return [[normalize_whitespace(cell.text) for cell in row.cells] for row in table.rows]

    def _style_name(self, paragraph: DocxParagraph) -> str | None:
        style = paragraph.style
        if style is None:
            return None
        return style.name

    def _heading_level(self, paragraph: DocxParagraph, style_name: str | None) -> int | None:
        if style_name:
            match = _HEADING_STYLE_RE.match(style_name)
            if match:
                return int(match.group(1))

        outline = paragraph._p.xpath("./*[local-name()='pPr']/*[local-name()='outlineLvl']")
        if outline:
            raw = outline[0].get(qn("w:val"))
            if raw is not None and raw.isdigit() and int(raw) < 9:
                return int(raw) + 1
        return None

    def _open_section(
        self,
        stack: list[Section],
        paragraph: DocxParagraph,
        level: int,
        warnings: list[ExtractionWarning],
    ) -> None:
        while stack[-1].level >= level:
            stack.pop()
        parent = stack[-1]

        title = normalize_whitespace(paragraph.text)
        if level > parent.level + 1:
            warnings.append(
                ExtractionWarning(
                    message=f"Heading level jumps from {parent.level} to {level}",
                    location=title or None,
                )
            )
        if not title:
            warnings.append(ExtractionWarning(message=f"Empty level {level} heading", location=parent.title or None))

        if parent.level == 0:
            path = [parent.title] if parent.title else []
        else:
            path = [*parent.path, parent.title]

        section = Section(level=level, title=title, path=path, anchor=self._anchor(paragraph))
        parent.subsections.append(section)
        stack.append(section)

    def _anchor(self, paragraph: DocxParagraph) -> str | None:
        for bookmark in paragraph._p.xpath(".//*[local-name()='bookmarkStart']"):
            name = bookmark.get(qn("w:name"))
            if name and name not in _IGNORED_BOOKMARKS:
                return name
        return None

    def _extract_paragraph(self, paragraph: DocxParagraph, style_name: str | None) -> Paragraph | None:
        parts: list[str] = []
        links: list[Link] = []
        self._collect_inline(paragraph, paragraph._p, parts, links)

        raw = "".join(parts)
        text = raw.strip()
        if not text:
            return None

        leading = len(raw) - len(raw.lstrip())
        for link in links:
            link.char_start = max(link.char_start - leading, 0)
            link.char_end = min(max(link.char_end - leading, 0), len(text))

        return Paragraph(text=text, list_item=self._is_list_item(paragraph, style_name), links=links)

    def _collect_inline(
        self,
        paragraph: DocxParagraph,
        element: etree._Element,
        parts: list[str],
        links: list[Link],
    ) -> None:
        for child in element.iterchildren():
            if child.tag == qn("w:r"):
                parts.append(Run(child, paragraph).text)
            elif child.tag == qn("w:hyperlink"):
                start = sum(len(part) for part in parts)
                link_parts: list[str] = []
                self._collect_inline(paragraph, child, link_parts, [])
                link_text = "".join(link_parts)
                parts.append(link_text)
                target = self._link_target(paragraph, child)
                if target:
                    links.append(Link(text=link_text, target=target, char_start=start, char_end=start + len(link_text)))
            elif child.tag not in _SKIPPED_INLINE_TAGS:
                self._collect_inline(paragraph, child, parts, links)

    def _link_target(self, paragraph: DocxParagraph, hyperlink: etree._Element) -> str | None:
        anchor = hyperlink.get(qn("w:anchor"))
        relationship_id = hyperlink.get(qn("r:id"))
        if relationship_id:
            rel = paragraph.part.rels.get(relationship_id)
            if rel is not None and rel.is_external:
                url = rel.target_ref
                return f"{url}#{anchor}" if anchor else url
        if anchor:
            return f"#{anchor}"
        return None

    def _is_list_item(self, paragraph: DocxParagraph, style_name: str | None) -> bool:
        if style_name and style_name.lower().startswith("list"):
            return True
        return bool(paragraph._p.xpath("./*[local-name()='pPr']/*[local-name()='numPr']"))

    def _is_toc_entry(self, paragraph: Paragraph) -> bool:
        if len(paragraph.links) != 1:
            return False
        link = paragraph.links[0]
        anchor = link.anchor or ""
        return anchor.startswith("_Toc") and normalize_whitespace(link.text) == paragraph.text
