"""Chunk data models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from models.document import DocumentIdentity


class ChunkLevel(str, Enum):
    """Granularity of a chunk in the document hierarchy."""
    DOCUMENT = "document"
    PAGE = "page"
    PARAGRAPH = "paragraph"


# Level directly above each non-root level
PARENT_LEVEL = {
    ChunkLevel.PAGE: ChunkLevel.DOCUMENT,
    ChunkLevel.PARAGRAPH: ChunkLevel.PAGE,
}


@dataclass
class Chunk:
    """Represents a document chunk for retrieval."""
    chunk_id: str  # "{hash}", "{hash}-{page}" or "{hash}-{page}-{paragraph}"
    level: ChunkLevel
    text: str
    source: DocumentIdentity
    parent_ids: List[str] = field(default_factory=list)
    page_number: Optional[int] = None
    paragraph_index: Optional[int] = None
    page_range: Optional[Tuple[int, int]] = None
    tokens_used: int = 0
    embedding_model: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Flatten into the payload stored next to the vector."""
        return {
            "chunk_id": self.chunk_id,
            "text": self.text,
            "chunk_level": self.level.value,
            "page_number": self.page_number,
            "paragraph_index": self.paragraph_index,
            "page_range": list(self.page_range) if self.page_range else None,
            "parent_ids": list(self.parent_ids),
            "document_name": self.source.name,
            "document_path": self.source.path,
            "file_format": self.source.file_format,
            "document_hash": self.source.content_hash,
            "tokens_used": self.tokens_used,
            "embedding_model": self.embedding_model,
        }


@dataclass
class SearchResult:
    """Chunk payload with relevance score from retrieval."""
    score: float  # 0.0 to 1.0
    payload: Dict[str, Any]

    @property
    def text(self) -> str:
        return self.payload.get("text") or ""

    @property
    def document_name(self) -> Optional[str]:
        return self.payload.get("document_name")

    @property
    def page_number(self) -> Optional[int]:
        return self.payload.get("page_number")


@dataclass
class VectorPoint:
    """A single (id, vector, payload) triple for the vector store."""
    point_id: str
    vector: List[float]
    payload: Dict[str, Any]
