"""
Shared test fixtures: in-memory stores, provider mocks and tokenizer stub.

The fakes mirror the async interface of VectorStore and ChatHistoryStore so
services can be exercised without Supabase.
"""
import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest

from models.chunk import SearchResult, VectorPoint
from models.conversation import ConversationTurn, QualityRating, RelatedDocument, Role
from services.embedding_model import Embedding
from services.llm_client import LLMClientError, LLMError, LLMResponse
from services.vector_store import DimensionMismatchError


class FakeEncoding:
    """Whitespace tokenizer standing in for tiktoken's o200k_base."""

    def encode(self, text: str) -> List[str]:
        return text.split()


@pytest.fixture(autouse=True)
def stub_tiktoken(monkeypatch):
    """Avoid downloading the tiktoken vocabulary in unit tests."""
    monkeypatch.setattr("tiktoken.get_encoding", lambda name: FakeEncoding())


class FakeVectorStore:
    """In-memory stand-in for the pgvector-backed VectorStore."""

    def __init__(self, dimension: int = 3):
        self.dimension = dimension
        self.points: Dict[str, VectorPoint] = {}
        self.ensure_calls = 0

    def validate_vector(self, vector: List[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

    async def ensure_collection(self, dimension: Optional[int] = None) -> bool:
        self.ensure_calls += 1
        return False

    async def upsert(self, points: List[VectorPoint]) -> None:
        if not points:
            raise ValueError("Points list cannot be empty")
        for point in points:
            self.validate_vector(point.vector)
            self.points[point.point_id] = point

    async def query(
        self,
        vector: List[float],
        limit: int = 10,
        score_threshold: float = 0.0,
        filter: Optional[Dict[str, Any]] = None
    ) -> List[SearchResult]:
        self.validate_vector(vector)
        scored = []
        for point in self.points.values():
            if filter and any(point.payload.get(k) != v for k, v in filter.items()):
                continue
            score = cosine(vector, point.vector)
            if score >= score_threshold:
                scored.append(SearchResult(score=score, payload=dict(point.payload)))
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    async def scroll_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        return [{"id": pid, "payload": p.payload} for pid, p in list(self.points.items())[:limit]]

    async def delete_all(self, ids: List[str]) -> int:
        for pid in ids:
            self.points.pop(pid, None)
        return len(ids)

    async def clear(self, batch_size: int = 1000) -> int:
        deleted = len(self.points)
        self.points.clear()
        return deleted

    async def count(self) -> int:
        return len(self.points)


class FakeChatHistoryStore:
    """In-memory stand-in for the chat_history table."""

    def __init__(self):
        self.rows: List[ConversationTurn] = []
        self.fail_inserts = False
        self.fail_reads = False
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def setup_schema(self) -> None:
        return None

    async def insert_turn(
        self,
        session_id: str,
        role: Role,
        content: str,
        embedding_tokens: int = 0,
        generation_tokens: int = 0,
        embedding_model: Optional[str] = None,
        generation_model: Optional[str] = None,
        related_documents: Optional[List[RelatedDocument]] = None
    ) -> int:
        if self.fail_inserts:
            raise RuntimeError("database unavailable")
        turn = ConversationTurn(
            id=len(self.rows) + 1,
            session_id=session_id,
            role=role,
            content=content,
            embedding_tokens=embedding_tokens,
            generation_tokens=generation_tokens,
            embedding_model=embedding_model,
            generation_model=generation_model,
            related_documents=list(related_documents or []),
            created_at=self._clock + timedelta(seconds=len(self.rows)),
        )
        self.rows.append(turn)
        return turn.id

    async def update_rating(self, turn_id: int, rating: QualityRating) -> int:
        for turn in self.rows:
            if turn.id == turn_id and turn.role == Role.ASSISTANT:
                turn.quality_rating = rating
                return 1
        return 0

    async def list_turns(self, session_id: str, limit: int) -> List[ConversationTurn]:
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        turns = [t for t in self.rows if t.session_id == session_id]
        turns.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return turns[:limit]


def cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def llm_response(text: str, tokens_input: int = 10, tokens_output: int = 5) -> LLMResponse:
    return LLMResponse(
        text=text,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        latency_ms=12,
        model_used="llama-3.3-70b-versatile"
    )


def llm_error(code: str, message: str = "provider failure") -> LLMClientError:
    return LLMClientError(LLMError(code=code, message=message, details={}))


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def chat_store():
    return FakeChatHistoryStore()


@pytest.fixture
def llm_client():
    """Mocked LLMClient; set `complete.side_effect` / `return_value` per test."""
    client = Mock()
    client.model = "llama-3.3-70b-versatile"
    client.complete = AsyncMock(return_value=llm_response("refined query"))
    return client


@pytest.fixture
def embedding_model():
    """Mocked EmbeddingModel returning a fixed 3-dimensional vector."""
    model = Mock()
    model.model_name = "sentence-transformers/all-mpnet-base-v2"
    model.embed = AsyncMock(return_value=Embedding(vector=[1.0, 0.0, 0.0], tokens=4))
    model.embed_batch = AsyncMock(
        side_effect=lambda texts: [Embedding(vector=[1.0, 0.0, 0.0], tokens=len(t.split())) for t in texts]
    )
    return model
