"""Request and response models for the HTTP API."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    prompt: str
    session_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    filter: Optional[Dict[str, Any]] = None


class TokenUsage(BaseModel):
    refinement: int = 0
    embedding: int = 0
    generation: int = 0
    total: int = 0


class RelatedDocumentModel(BaseModel):
    name: str
    locator: str
    score: float
    document_hash: str


class SearchResultModel(BaseModel):
    score: float
    payload: Dict[str, Any]


class ChatResponse(BaseModel):
    query: str
    answer: str
    session_id: str
    results: List[SearchResultModel]
    count: int
    tokens_used: TokenUsage
    related_documents: List[RelatedDocumentModel]


class FeedbackRequest(BaseModel):
    turn_id: int
    rating: Literal["good", "bad"]


class FeedbackResponse(BaseModel):
    success: bool


class TurnModel(BaseModel):
    id: int
    session_id: str
    role: str
    content: str
    embedding_tokens: int
    generation_tokens: int
    embedding_model: Optional[str] = None
    generation_model: Optional[str] = None
    quality_rating: str
    related_documents: List[RelatedDocumentModel] = []
    created_at: Optional[datetime] = None


class HistoryResponse(BaseModel):
    history: List[TurnModel]
    count: int
    session_id: Optional[str] = None


class EntryModel(BaseModel):
    id: str
    payload: Dict[str, Any]


class EntriesResponse(BaseModel):
    entries: List[EntryModel]
    count: int


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    error: ErrorDetail
