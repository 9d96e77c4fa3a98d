"""Retrieval engine for orchestrating query embedding and chunk retrieval."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from models.chunk import SearchResult
from services.vector_store import VectorStore
from services.embedding_model import EmbeddingModel
from config import DEFAULT_SCORE_THRESHOLD, DEFAULT_SEARCH_LIMIT

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """Ranked search results plus the embedding tokens spent on the query."""
    results: List[SearchResult] = field(default_factory=list)
    tokens_used: int = 0


class RetrievalEngine:
    """Embed the refined query and run a thresholded similarity search."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        default_score_threshold: float = DEFAULT_SCORE_THRESHOLD
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: VectorStore instance for similarity search
            embedding_model: EmbeddingModel instance for query embedding
            default_score_threshold: Threshold used when the caller gives none
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.default_score_threshold = default_score_threshold
        logger.info("Initialized RetrievalEngine")

    async def retrieve(
        self,
        refined_query: str,
        history: Optional[List[Dict[str, str]]] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        score_threshold: Optional[float] = None,
        filter: Optional[Dict[str, Any]] = None
    ) -> RetrievalResult:
        """
        Retrieve chunks similar to the refined query.

        The refined query already folds in the conversation; `history` is only
        used for logging context here.

        Args:
            refined_query: Search-optimized query text
            history: Prior turns as chat messages, oldest first
            limit: Maximum number of results (default: 10)
            score_threshold: Minimum score; defaults to the configured threshold
            filter: Structured payload filter passed to the store unmodified

        Returns:
            RetrievalResult, empty for an empty query or no matches

        Raises:
            DimensionMismatchError: If the provider's vector length disagrees with the store
            EmbeddingError: If the query could not be embedded
        """
        if not refined_query or not refined_query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return RetrievalResult()

        threshold = self.default_score_threshold if score_threshold is None else score_threshold

        logger.debug(
            f"Embedding query ({len(history or [])} prior turns): {refined_query[:100]}..."
        )
        embedding = await self.embedding_model.embed(refined_query)

        # Static config mismatch; retrying cannot fix it
        self.vector_store.validate_vector(embedding.vector)

        results = await self.vector_store.query(
            embedding.vector,
            limit=limit,
            score_threshold=threshold,
            filter=filter
        )

        # The store already applies the threshold; keep the guarantee local too
        results = [r for r in results if r.score >= threshold][:limit]

        if results:
            logger.info(
                f"Retrieved {len(results)} chunks (top score: {results[0].score:.3f}, "
                f"threshold: {threshold:.3f})"
            )
        else:
            logger.info(f"No chunks above relevance threshold {threshold}")

        return RetrievalResult(results=results, tokens_used=embedding.tokens)
