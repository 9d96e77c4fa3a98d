"""Per-request pipeline: history → refine → retrieve → synthesize → record."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.chunk import SearchResult
from models.conversation import ConversationTurn, QualityRating, RelatedDocument, TokenCounts
from services.answer_synthesizer import AnswerSynthesizer
from services.conversation_manager import ConversationManager
from services.query_refiner import QueryRefiner
from services.retrieval_engine import RetrievalEngine
from services.vector_store import VectorStore
from config import (
    DEFAULT_SEARCH_LIMIT,
    EMBEDDING_MODEL,
    GENERATION_MODEL,
    HISTORY_PAGE_SIZE,
    SYNTHESIS_HISTORY_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass
class TokenBreakdown:
    refinement: int = 0
    embedding: int = 0
    generation: int = 0

    @property
    def total(self) -> int:
        return self.refinement + self.embedding + self.generation


@dataclass
class ChatResult:
    query: str
    answer: str
    session_id: str
    results: List[SearchResult]
    tokens_used: TokenBreakdown
    related_documents: List[RelatedDocument]
    degraded_steps: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)


def related_documents_for(results: List[SearchResult]) -> List[RelatedDocument]:
    """One entry per source document, at its best-scoring (first) result."""
    related: List[RelatedDocument] = []
    seen = set()
    for result in results:
        payload = result.payload
        key = payload.get("document_hash") or payload.get("document_name")
        if not key or key in seen:
            continue
        seen.add(key)

        locator = payload.get("document_path") or payload.get("document_name") or ""
        if result.page_number:
            locator = f"{locator}#page={result.page_number}"

        related.append(RelatedDocument(
            name=payload.get("document_name") or "",
            locator=locator,
            score=result.score,
            document_hash=payload.get("document_hash") or "",
        ))
    return related


class ChatPipeline:
    """Wires the five core components together for chat, feedback and history requests."""

    def __init__(
        self,
        query_refiner: QueryRefiner,
        retrieval_engine: RetrievalEngine,
        answer_synthesizer: AnswerSynthesizer,
        conversation_manager: ConversationManager,
        vector_store: VectorStore,
        embedding_model_name: str = EMBEDDING_MODEL,
        generation_model_name: str = GENERATION_MODEL
    ):
        self.query_refiner = query_refiner
        self.retrieval_engine = retrieval_engine
        self.answer_synthesizer = answer_synthesizer
        self.conversation_manager = conversation_manager
        self.vector_store = vector_store
        self.embedding_model_name = embedding_model_name
        self.generation_model_name = generation_model_name

    async def chat(
        self,
        prompt: str,
        session_id: Optional[str] = None,
        limit: Optional[int] = None,
        filter: Optional[Dict[str, Any]] = None,
        score_threshold: Optional[float] = None
    ) -> ChatResult:
        """
        Answer one user message.

        Raises:
            ValueError: If the prompt is empty
            EmbeddingError: If the query could not be embedded
            DimensionMismatchError: If provider and store dimensions disagree
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt is required and cannot be empty")

        start_time = time.time()
        degraded: List[str] = []

        turns = await self.conversation_manager.get_history(session_id, SYNTHESIS_HISTORY_SIZE)
        history = ConversationManager.format_history(turns)

        refined = await self.query_refiner.refine(prompt, history)
        if refined.degraded:
            degraded.append("refinement")

        retrieval = await self.retrieval_engine.retrieve(
            refined.value.text,
            history,
            limit=limit or DEFAULT_SEARCH_LIMIT,
            score_threshold=score_threshold,
            filter=filter
        )

        answer = await self.answer_synthesizer.synthesize(prompt, retrieval.results, history)
        if answer.degraded:
            degraded.append("synthesis")

        related = related_documents_for(retrieval.results)
        tokens = TokenBreakdown(
            refinement=refined.value.tokens_used,
            embedding=retrieval.tokens_used,
            generation=answer.value.tokens_used,
        )

        recorded = await self.conversation_manager.record_exchange(
            session_id,
            prompt,
            answer.value.text,
            user_tokens=TokenCounts(
                embedding_tokens=tokens.embedding,
                generation_tokens=tokens.refinement,
                embedding_model=self.embedding_model_name,
                generation_model=self.generation_model_name,
            ),
            assistant_tokens=TokenCounts(
                embedding_tokens=0,
                generation_tokens=tokens.generation,
                embedding_model=self.embedding_model_name,
                generation_model=self.generation_model_name,
            ),
            related_documents=related,
        )
        if recorded.degraded:
            degraded.append("persistence")

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Chat processed in {latency_ms}ms",
            extra={
                "session_id": recorded.value,
                "results": len(retrieval.results),
                "tokens_total": tokens.total,
                "degraded_steps": degraded,
            }
        )

        return ChatResult(
            query=refined.value.text,
            answer=answer.value.text,
            session_id=recorded.value,
            results=retrieval.results,
            tokens_used=tokens,
            related_documents=related,
            degraded_steps=degraded,
        )

    async def feedback(self, turn_id: int, rating: str) -> bool:
        """
        Rate an assistant answer.

        Raises:
            ValueError: If the rating is not "good" or "bad"
        """
        if rating not in (QualityRating.GOOD.value, QualityRating.BAD.value):
            raise ValueError("rating must be 'good' or 'bad'")

        await self.conversation_manager.rate_answer(turn_id, QualityRating(rating))
        return True

    async def history(self, session_id: Optional[str], limit: int = HISTORY_PAGE_SIZE) -> List[ConversationTurn]:
        return await self.conversation_manager.get_history(session_id, limit)

    async def list_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        return await self.vector_store.scroll_all(limit)
