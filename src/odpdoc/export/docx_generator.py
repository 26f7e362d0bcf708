"""Document generator: generic section tree -> Word (.docx) bytes."""

from __future__ import annotations

from io import BytesIO
import logging

from docx import Document
from docx.document import Document as DocxDocument
from docx.opc.constants import RELATIONSHIP_TYPE
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph as DocxParagraph

from odpdoc.extraction.models import Link, Paragraph, Section

logger = logging.getLogger(__name__)

LIST_STYLE = "List Bullet"
_MAX_HEADING_LEVEL = 9
_LINK_COLOR = "0563C1"


class DocxGenerator:
    """Render the tree so that ``DocxExtractor`` reads back the same sections, anchors and links."""

    def __init__(self) -> None:
        self._bookmark_id = 0

    def render(self, root: Section) -> bytes:
        document = Document()
        if root.title:
            document.core_properties.title = root.title
            document.add_paragraph(root.title, style="Title")

        self._bookmark_id = 0
        for paragraph in root.paragraphs:
            self._add_paragraph(document, paragraph)
        for child in root.subsections:
            self._add_section(document, child)

        buffer = BytesIO()
        document.save(buffer)
        logger.debug("Rendered document %r (%d bookmarks)", root.title, self._bookmark_id)
        return buffer.getvalue()

    def _add_section(self, document: DocxDocument, section: Section) -> None:
        level = min(max(section.level, 1), _MAX_HEADING_LEVEL)
        heading = document.add_heading(section.title, level=level)
        if section.anchor:
            self._add_bookmark(heading, section.anchor)

        for paragraph in section.paragraphs:
            self._add_paragraph(document, paragraph)
        for child in section.subsections:
            self._add_section(document, child)

    def _add_paragraph(self, document: DocxDocument, paragraph: Paragraph) -> None:
        target = document.add_paragraph(style=LIST_STYLE if paragraph.list_item else None)
        cursor = 0
        for link in sorted(paragraph.links, key=lambda item: item.char_start):
            if link.char_start < cursor or link.char_end > len(paragraph.text):
                continue
            if link.char_start > cursor:
                target.add_run(paragraph.text[cursor : link.char_start])
            self._add_hyperlink(target, paragraph.text[link.char_start : link.char_end], link)
            cursor = link.char_end
        if cursor < len(paragraph.text):
            target.add_run(paragraph.text[cursor:])

    def _add_bookmark(self, paragraph: DocxParagraph, name: str) -> None:
        bookmark_id = str(self._bookmark_id)
        self._bookmark_id += 1

        start = OxmlElement("w:bookmarkStart")
        start.set(qn("w:id"), bookmark_id)
        start.set(qn("w:name"), name)
        end = OxmlElement("w:bookmarkEnd")
        end.set(qn("w:id"), bookmark_id)

        p = paragraph._p
        if p.pPr is not None:
            p.pPr.addnext(start)
        else:
            p.insert(0, start)
        p.append(end)

    def _add_hyperlink(self, paragraph: DocxParagraph, text: str, link: Link) -> None:
        hyperlink = OxmlElement("w:hyperlink")
        if link.anchor is not None:
            hyperlink.set(qn("w:anchor"), link.anchor)
        else:
            relationship_id = paragraph.part.relate_to(link.target, RELATIONSHIP_TYPE.HYPERLINK, is_external=True)
            hyperlink.set(qn("r:id"), relationship_id)

        run = OxmlElement("w:r")
        run_properties = OxmlElement("w:rPr")
        color = OxmlElement("w:color")
        color.set(qn("w:val"), _LINK_COLOR)
        underline = OxmlElement("w:u")
        underline.set(qn("w:val"), "single")
        run_properties.append(color)
        run_properties.append(underline)
        run.append(run_properties)

        text_element = OxmlElement("w:t")
        text_element.set(qn("xml:space"), "preserve")
        text_element.text = text
        run.append(text_element)

        hyperlink.append(run)
        paragraph._p.append(hyperlink)
