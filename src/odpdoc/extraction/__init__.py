"""Generic document-structure extraction."""

from .docx_extractor import DocxExtractor, ExtractionError
from .models import ExtractionWarning, Link, Paragraph, Section

__all__ = ["DocxExtractor", "ExtractionError", "ExtractionWarning", "Link", "Paragraph", "Section"]
