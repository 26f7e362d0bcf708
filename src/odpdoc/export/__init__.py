"""Export direction: scope query -> section tree -> Word document."""

from .docx_generator import DocxGenerator
from .hierarchy import HierarchyBuilder, document_title

__all__ = ["DocxGenerator", "HierarchyBuilder", "document_title"]
