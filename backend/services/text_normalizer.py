"""Cleanup of PDF-extracted page text before chunking."""
import re
from typing import Iterable

from config import SECTION_HEADING_PATTERNS

# Letters on both sides of a line-break hyphen; \w would also join digits ("2019-\n2020").
_HYPHENATED_BREAK = re.compile(r"([^\W\d_]+)-[ \t]*[\r\n]+[ \t]*([^\W\d_]+)")


def remove_hyphenation(text: str) -> str:
    """Drop soft hyphens and join words split across a line break."""
    text = text.replace("\u00ad", "")
    return _HYPHENATED_BREAK.sub(r"\1\2", text)


def fix_spacing(text: str) -> str:
    """Collapse runs of blanks and normalise spacing around punctuation."""
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"[ \t]+([,;:.!?·])", r"\1", text)
    text = re.sub(r"([,;:!?·])([^\W\d_])", r"\1 \2", text)
    text = re.sub(r"\s+\)", ")", text)
    text = re.sub(r"\(\s+", "(", text)
    return text


def normalize_line_breaks(text: str) -> str:
    """Unify line endings, rejoin broken sentences, cap blank lines at one."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+\n", "\n", text)
    # A line ending in a lowercase letter or comma continued by a lowercase letter
    text = re.sub(r"([a-zα-ωά-ώ,;])\n([a-zα-ωά-ώ])", r"\1 \2", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text


def add_markdown_structure(text: str, heading_patterns: Iterable[str] = SECTION_HEADING_PATTERNS) -> str:
    """Turn recognised section lines into `###` headings on their own paragraph."""
    for pattern in heading_patterns:
        text = re.sub(pattern, r"\n### \1\n\n", text, flags=re.MULTILINE)
    return text


def ensure_consistency(text: str) -> str:
    """Final pass: blank lines around headings, trimmed lines, trimmed text."""
    text = re.sub(r"(#{2,4}[^\n]+)\n([^\n])", r"\1\n\n\2", text)
    text = re.sub(r"([^\n])\n(#{2,4})", r"\1\n\n\2", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"^[ \t]+", "", text, flags=re.MULTILINE)
    text = re.sub(r"[ \t]+$", "", text, flags=re.MULTILINE)
    return text.strip()


def normalize(raw_page: str, heading_patterns: Iterable[str] = SECTION_HEADING_PATTERNS) -> str:
    """
    Clean a single page of extracted text.

    Order matters: hyphenation has to be repaired before spacing is collapsed,
    otherwise the line break that marks a split word is gone.
    """
    text = remove_hyphenation(raw_page)
    text = fix_spacing(text)
    text = normalize_line_breaks(text)
    text = add_markdown_structure(text, heading_patterns)
    return ensure_consistency(text)
