"""Text normalization helpers used by extraction, mapping and comparison."""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_NUMBERING_RE = re.compile(r"^(?:\d+(?:\.\d+)*\.?)\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(text: str) -> str:
    """Produce stable text for comparisons and title lookups."""

    normalized = unicodedata.normalize("NFKC", text)
    return normalize_whitespace(normalized).casefold()


def strip_numbering(title: str) -> str:
    """Drop outline numbering such as ``1.2.3`` in front of a heading."""

    return _NUMBERING_RE.sub("", normalize_whitespace(title))
