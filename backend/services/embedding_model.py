"""Embedding model integration with Hugging Face Inference API."""
import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
import httpx
import tiktoken

from services.rate_limiter import RateLimiter
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL, MAX_EMBEDDING_INPUT_CHARS, RATE_LIMIT_BACKOFF_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class Embedding:
    """Vector for one input text and the tokens it consumed."""
    vector: List[float]
    tokens: int


class EmbeddingError(RuntimeError):
    """Embedding could not be produced; there is no fallback for this."""


class EmbeddingRateLimitError(EmbeddingError):
    """Provider kept answering 429 until the retry budget ran out."""


class EmbeddingModel:
    """Wrapper for Hugging Face Inference API embedding model."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_input_chars: int = MAX_EMBEDDING_INPUT_CHARS,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        rate_limit_delay: float = RATE_LIMIT_BACKOFF_SECONDS,
        rate_limit_retries: Optional[int] = None,
        timeout: float = 120.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the embedding model client.

        Args:
            rate_limiter: Shared provider pacing
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            max_input_chars: Inputs are truncated to this many characters
            max_retries: Maximum attempts for 503 (model loading) and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            rate_limit_delay: Initial delay after a 429
            rate_limit_retries: Cap on 429 retries; None retries until the provider answers
            timeout: Request timeout in seconds
            sleep: Coroutine used to wait between attempts
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.rate_limiter = rate_limiter
        self.api_key = api_key
        self.model_name = model_name
        self.max_input_chars = max_input_chars
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.rate_limit_delay = rate_limit_delay
        self.rate_limit_retries = rate_limit_retries
        self.timeout = timeout
        self._sleep = sleep
        self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"
        self._encoding = None

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def truncate(self, text: str) -> str:
        """Hard cap on input length; longer inputs are cut, never rejected."""
        if len(text) > self.max_input_chars:
            logger.debug(f"Truncating embedding input from {len(text)} to {self.max_input_chars} chars")
            return text[:self.max_input_chars]
        return text

    def count_tokens(self, text: str) -> int:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding("o200k_base")
        return len(self._encoding.encode(text))

    async def embed(self, text: str) -> Embedding:
        """
        Generate embedding for a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding with vector and token count

        Raises:
            ValueError: If text is empty
            EmbeddingError: If API request fails after all retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[Embedding]:
        """
        Generate embeddings for multiple texts in a single API call.

        Args:
            texts: List of texts to embed

        Returns:
            One Embedding per input, in input order

        Raises:
            ValueError: If texts list is empty or contains empty strings
            EmbeddingError: If API request fails after all retries
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        if any(not t or not t.strip() for t in texts):
            raise ValueError("Texts in batch cannot be empty")

        inputs = [self.truncate(t) for t in texts]
        vectors = await self._embed_with_retry(inputs)

        if len(vectors) != len(inputs):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} embeddings for {len(inputs)} inputs"
            )

        return [
            Embedding(vector=vector, tokens=self.count_tokens(text))
            for vector, text in zip(vectors, inputs)
        ]

    async def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Call the HF API, retrying 503s, network errors and rate limits.

        HF free tier models "sleep" and take 15-20s to load on first query;
        those 503s and network errors get `max_retries` attempts. A 429 is
        retried with backoff up to `rate_limit_retries` times (unbounded by
        default) since no answer can be produced without the embedding.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors

        Raises:
            EmbeddingRateLimitError: If the 429 retry budget is exhausted
            EmbeddingError: If API request fails after all retries
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        delay = self.initial_delay
        rate_limit_delay = self.rate_limit_delay
        rate_limited = 0
        attempt = 0
        last_error = None

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                await self.rate_limiter.acquire()

                try:
                    start_time = time.time()
                    response = await client.post(self.api_url, headers=headers, json=payload)
                    elapsed = time.time() - start_time
                except httpx.TimeoutException:
                    last_error = f"Request timeout after {self.timeout}s"
                except httpx.RequestError as e:
                    last_error = f"Network error: {str(e)}"
                else:
                    if response.status_code == 429:
                        rate_limited += 1
                        if self.rate_limit_retries is not None and rate_limited > self.rate_limit_retries:
                            error_msg = f"Rate limit exceeded after {rate_limited} attempts"
                            logger.error(error_msg)
                            raise EmbeddingRateLimitError(error_msg)

                        logger.warning(f"Rate limited by embedding provider. Waiting {rate_limit_delay}s...")
                        await self._sleep(rate_limit_delay)
                        rate_limit_delay = min(rate_limit_delay * 2, 60.0)
                        continue

                    # Handle 503 Service Unavailable (model loading)
                    if response.status_code == 503:
                        last_error = "Model loading (503)"
                    elif response.status_code == 401:
                        logger.error("Authentication failed for Hugging Face API")
                        raise EmbeddingError("Invalid API key")
                    elif response.status_code != 200:
                        error_msg = f"API request failed with status {response.status_code}: {response.text}"
                        logger.error(error_msg)
                        raise EmbeddingError(error_msg)
                    else:
                        if elapsed > 10.0:
                            logger.info(
                                f"Model loading delay detected: {elapsed:.1f}s for {len(texts)} texts "
                                f"(attempt {attempt + 1})"
                            )
                        else:
                            logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")
                        return response.json()

                attempt += 1
                logger.warning(f"{last_error} on attempt {attempt}/{self.max_retries}")
                if attempt < self.max_retries:
                    await self._sleep(delay)
                    delay = min(delay * 2, 60.0)  # Exponential backoff, max 60s

        # All retries exhausted
        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise EmbeddingError(error_msg)

    async def warmup(self) -> bool:
        """
        Warm up the model with a dummy query to avoid cold start delays.

        Returns:
            True if warmup successful, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()

            await self.embed("warmup query")

            elapsed = time.time() - start_time
            logger.info(f"Model warmup completed in {elapsed:.1f}s")
            return True

        except Exception as e:
            logger.error(f"Model warmup failed: {str(e)}")
            return False
