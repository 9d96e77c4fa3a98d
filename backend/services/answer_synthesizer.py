"""Grounded answer generation from retrieved passages and prior turns."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from models.chunk import SearchResult
from models.outcome import Degraded, Ok, Outcome
from services.llm_client import LLMClient, LLMClientError, LLMResponse
from config import RATE_LIMIT_BACKOFF_SECONDS

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I encountered an error while generating the response."

SYNTHESIZER_SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based on provided document excerpts and conversation history.

Instructions:
1. Answer the user's question using ONLY the information provided in the context and previous conversation
2. If the context doesn't contain enough information, clearly state this
3. Cite specific documents when referencing information (e.g., "According to Document 1...")
4. Use conversation history to provide contextual and coherent responses
5. Be concise but thorough in your response
6. If multiple documents contain relevant information, synthesize the information
7. Maintain the same language as the user's question
8. If no relevant information is found, politely state that the documents don't contain information about the query"""


@dataclass
class Answer:
    text: str
    tokens_used: int


class AnswerSynthesizer:
    """Builds the grounded-generation request and degrades to an apology on failure."""

    def __init__(
        self,
        llm_client: LLMClient,
        retry_delay: float = RATE_LIMIT_BACKOFF_SECONDS,
        max_tokens: int = 4000,
        temperature: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the synthesizer.

        Args:
            llm_client: Generation provider
            retry_delay: Fixed wait before the single retry after a rate limit
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            sleep: Coroutine used to wait before retrying
        """
        self.llm_client = llm_client
        self.retry_delay = retry_delay
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._sleep = sleep

    @staticmethod
    def format_passages(search_results: List[SearchResult]) -> str:
        """Numbered passages; the numbers are what the answer cites."""
        if not search_results:
            return "No relevant document excerpts were found."

        blocks = []
        for number, result in enumerate(search_results, start=1):
            source = result.document_name or "unknown document"
            if result.page_number:
                source = f"{source}, page {result.page_number}"
            blocks.append(f"Document {number} ({source}, score {result.score:.2f}):\n{result.text}")
        return "\n\n".join(blocks)

    @classmethod
    def build_messages(
        cls,
        raw_query: str,
        search_results: List[SearchResult],
        history: Optional[List[Dict[str, str]]] = None
    ) -> List[Dict[str, str]]:
        """System instructions, passages, earlier turns (oldest first), then the question."""
        messages = [
            {"role": "system", "content": SYNTHESIZER_SYSTEM_PROMPT},
            {"role": "system", "content": f"Context:\n\n{cls.format_passages(search_results)}"},
        ]
        messages.extend(history or [])
        messages.append({
            "role": "user",
            "content": (
                f"Question: {raw_query}\n\n"
                "Please provide a comprehensive answer based on the above context."
            ),
        })
        return messages

    async def synthesize(
        self,
        raw_query: str,
        search_results: List[SearchResult],
        history: Optional[List[Dict[str, str]]] = None
    ) -> Outcome[Answer]:
        """
        Generate a grounded answer.

        A rate-limited call is retried once after `retry_delay`. Any other
        failure, or a second rate limit, yields the apology text with zero
        tokens so the request still completes and produces a persistable turn.

        Returns:
            Ok(Answer) or Degraded(Answer(APOLOGY, 0), reason)
        """
        messages = self.build_messages(raw_query, search_results, history)

        try:
            response = await self._complete(messages)
        except LLMClientError as e:
            if not e.is_rate_limited:
                return self._degrade(e)
            logger.warning(f"Rate limited during answer generation. Retrying in {self.retry_delay}s...")
            await self._sleep(self.retry_delay)
            try:
                response = await self._complete(messages)
            except LLMClientError as retry_error:
                return self._degrade(retry_error)

        text = response.text or "Unable to generate response."
        return Ok(Answer(text, response.total_tokens))

    async def _complete(self, messages: List[Dict[str, str]]) -> LLMResponse:
        return await self.llm_client.complete(
            messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature
        )

    @staticmethod
    def _degrade(error: LLMClientError) -> Degraded[Answer]:
        logger.warning(f"Answer generation failed: {error.error.message}")
        return Degraded(Answer(APOLOGY, 0), reason=error.error.code)
