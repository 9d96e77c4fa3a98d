"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class QualityRating(str, Enum):
    GOOD = "good"
    BAD = "bad"
    UNSET = "unset"  # stored as NULL


@dataclass
class RelatedDocument:
    """A source document that grounded an assistant answer."""
    name: str
    locator: str
    score: float
    document_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "locator": self.locator,
            "score": self.score,
            "document_hash": self.document_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelatedDocument":
        return cls(
            name=data.get("name", ""),
            locator=data.get("locator", ""),
            score=float(data.get("score", 0.0)),
            document_hash=data.get("document_hash", ""),
        )


@dataclass
class TokenCounts:
    """Token usage attributed to one turn."""
    embedding_tokens: int = 0
    generation_tokens: int = 0
    embedding_model: Optional[str] = None
    generation_model: Optional[str] = None


@dataclass
class ConversationTurn:
    """Represents one role's contribution to a session."""
    id: int
    session_id: str
    role: Role
    content: str
    embedding_tokens: int = 0
    generation_tokens: int = 0
    embedding_model: Optional[str] = None
    generation_model: Optional[str] = None
    quality_rating: QualityRating = QualityRating.UNSET
    related_documents: List[RelatedDocument] = field(default_factory=list)
    created_at: Optional[datetime] = None
