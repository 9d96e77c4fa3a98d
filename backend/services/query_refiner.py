"""Query refinement: rewrite a raw user question for semantic search."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from models.outcome import Degraded, Ok, Outcome
from services.llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

REFINER_SYSTEM_PROMPT = """You are a query optimizer for document search. Clean and expand user queries to improve semantic search results.

Rules:
1. Fix typos and grammar
2. Expand abbreviations
3. Add related keywords/synonyms
4. Keep queries concise
5. Remove conversational fluff
6. Return only the optimized query text
7. Do not add any explanations or additional text
8. Maintain the original intent of the query
9. Answer in the same language as the original query"""


@dataclass
class RefinedQuery:
    text: str
    tokens_used: int


class QueryRefiner:
    """Best-effort rewrite of the user's query; never blocks the request."""

    def __init__(self, llm_client: LLMClient, max_tokens: int = 100, temperature: float = 0.1):
        self.llm_client = llm_client
        self.max_tokens = max_tokens
        self.temperature = temperature

    @staticmethod
    def build_messages(raw_query: str, history: Optional[List[Dict[str, str]]] = None) -> List[Dict[str, str]]:
        """System rules, earlier turns (oldest first), then the query to rewrite."""
        messages = [{"role": "system", "content": REFINER_SYSTEM_PROMPT}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": raw_query})
        return messages

    async def refine(
        self,
        raw_query: str,
        history: Optional[List[Dict[str, str]]] = None
    ) -> Outcome[RefinedQuery]:
        """
        Rewrite `raw_query` into a search-optimized form.

        Args:
            raw_query: The user's question as typed
            history: Prior turns as chat messages, oldest first

        Returns:
            Ok with the rewritten query, or Degraded carrying the raw query and
            zero tokens when the provider fails or returns nothing
        """
        try:
            response = await self.llm_client.complete(
                self.build_messages(raw_query, history),
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except LLMClientError as e:
            logger.warning(f"Query refinement failed, using original: {e.error.message}")
            return Degraded(RefinedQuery(raw_query, 0), reason=e.error.code)

        if not response.text:
            logger.warning("Query refinement returned empty text, using original")
            return Degraded(RefinedQuery(raw_query, response.total_tokens), reason="EMPTY_RESPONSE")

        logger.info(f"Refined query: {raw_query[:80]!r} -> {response.text[:80]!r}")
        return Ok(RefinedQuery(response.text, response.total_tokens))
