"""Chunking engine building the document > page > paragraph hierarchy."""
import logging
import re
from dataclasses import dataclass
from typing import List, Pattern

from models.chunk import Chunk, ChunkLevel
from models.document import DocumentIdentity
from config import HEADING_PATTERN, MIN_PARAGRAPH_LENGTH

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\n+")


@dataclass(frozen=True)
class MergeRules:
    """Pattern table driving the paragraph merge pass."""
    heading_pattern: str = HEADING_PATTERN
    min_paragraph_length: int = MIN_PARAGRAPH_LENGTH

    def compiled_heading(self) -> Pattern[str]:
        return re.compile(self.heading_pattern)


class ChunkingEngine:
    """Segments a document into hierarchically linked, deterministically named chunks."""

    def __init__(self, rules: MergeRules = MergeRules()):
        """
        Initialize ChunkingEngine.

        Args:
            rules: Heading marker and minimum paragraph length for merging
        """
        self.rules = rules
        self._heading = rules.compiled_heading()

    def build(
        self,
        full_text: str,
        page_texts: List[str],
        identity: DocumentIdentity,
        paragraph_chunking: bool = True
    ) -> List[Chunk]:
        """
        Build document, page and (optionally) paragraph chunks.

        Ids are derived only from the content hash and the position in the
        hierarchy, so re-ingesting an unchanged document yields the same ids.

        Args:
            full_text: Whole document text
            page_texts: Per-page text in document order
            identity: Name, path, format and content hash of the source
            paragraph_chunking: Whether to emit paragraph level chunks

        Returns:
            Chunks in emission order: document, pages, then paragraphs
        """
        document_id = identity.content_hash
        chunks = [
            Chunk(
                chunk_id=document_id,
                level=ChunkLevel.DOCUMENT,
                text=full_text,
                source=identity,
                parent_ids=[],
                page_range=(1, len(page_texts)),
            )
        ]

        page_ids = []
        for index, page_text in enumerate(page_texts):
            page_id = f"{document_id}-{index + 1}"
            page_ids.append(page_id)
            chunks.append(Chunk(
                chunk_id=page_id,
                level=ChunkLevel.PAGE,
                text=page_text,
                source=identity,
                parent_ids=[document_id],
                page_number=index + 1,
            ))

        if paragraph_chunking:
            for index, page_text in enumerate(page_texts):
                for ordinal, paragraph in enumerate(self.merge_paragraphs(page_text), start=1):
                    chunks.append(Chunk(
                        chunk_id=f"{page_ids[index]}-{ordinal}",
                        level=ChunkLevel.PARAGRAPH,
                        text=paragraph,
                        source=identity,
                        parent_ids=[page_ids[index]],
                        page_number=index + 1,
                        paragraph_index=ordinal,
                    ))

        logger.info(
            f"Built {len(chunks)} chunks for {identity.name} "
            f"({len(page_texts)} pages, paragraphs={'on' if paragraph_chunking else 'off'})"
        )
        return chunks

    def split_paragraphs(self, page_text: str) -> List[str]:
        """Split page text on blank lines, dropping empty pieces."""
        if not page_text:
            return []
        parts = (part.strip() for part in PARAGRAPH_BREAK.split(page_text))
        return [part for part in parts if part]

    def is_heading(self, paragraph: str) -> bool:
        return bool(self._heading.match(paragraph))

    def merge_paragraphs(self, page_text: str) -> List[str]:
        """
        Merge raw paragraphs so headings and short fragments do not stand alone.

        - A heading absorbs the next paragraph unless that one is a heading too.
        - Short paragraphs accumulate in a buffer that flushes before a long
          paragraph, before a heading, or at the end of the page.
        - Everything else is emitted as is.

        Args:
            page_text: Text of a single page

        Returns:
            Paragraph texts in emission order
        """
        raw = self.split_paragraphs(page_text)
        merged: List[str] = []
        buffer = ""
        min_length = self.rules.min_paragraph_length

        i = 0
        while i < len(raw):
            paragraph = raw[i]
            following = raw[i + 1] if i + 1 < len(raw) else None

            if self.is_heading(paragraph):
                if buffer:
                    merged.append(buffer)
                    buffer = ""
                if following is not None and not self.is_heading(following):
                    merged.append(f"{paragraph}\n\n{following}")
                    i += 2
                    continue
                merged.append(paragraph)
            elif len(paragraph) < min_length:
                buffer = f"{buffer}\n\n{paragraph}" if buffer else paragraph
                if (
                    following is None
                    or len(following) >= min_length
                    or self.is_heading(following)
                ):
                    merged.append(buffer)
                    buffer = ""
            else:
                if buffer:
                    merged.append(buffer)
                    buffer = ""
                merged.append(paragraph)
            i += 1

        if buffer:
            merged.append(buffer)

        return merged
