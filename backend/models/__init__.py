"""Data models for the PDF RAG chat service."""
from .document import Document, DocumentIdentity, Page
from .chunk import Chunk, ChunkLevel, SearchResult, VectorPoint
from .conversation import ConversationTurn, QualityRating, RelatedDocument, Role, TokenCounts
from .outcome import Degraded, Ok, Outcome

__all__ = [
    "Document",
    "DocumentIdentity",
    "Page",
    "Chunk",
    "ChunkLevel",
    "SearchResult",
    "VectorPoint",
    "ConversationTurn",
    "QualityRating",
    "RelatedDocument",
    "Role",
    "TokenCounts",
    "Degraded",
    "Ok",
    "Outcome",
]
