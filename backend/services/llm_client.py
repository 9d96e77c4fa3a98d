"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import List, Optional, Dict, Any
from groq import AsyncGroq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from services.rate_limiter import RateLimiter
from config import GROQ_API_KEY, GENERATION_MODEL

logger = logging.getLogger(__name__)

RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str

    @property
    def total_tokens(self) -> int:
        return self.tokens_input + self.tokens_output


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)

    @property
    def is_rate_limited(self) -> bool:
        return self.error.code == RATE_LIMIT_ERROR


class LLMClient:
    """Client for interfacing with Groq API for chat completions."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        api_key: Optional[str] = None,
        model: str = GENERATION_MODEL
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            rate_limiter: Shared provider pacing
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Generation model used for every completion
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.rate_limiter = rate_limiter
        self.model = model
        self.client = AsyncGroq(api_key=self.api_key)
        logger.info("LLMClient initialized successfully")

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 500,
        temperature: float = 0.1
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Chat messages ({"role", "content"}) in order
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        model = self.model
        await self.rate_limiter.acquire()
        start_time = time.time()

        try:
            logger.debug(f"Generating response with model: {model}")

            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature
            )

            # Calculate latency
            latency_ms = int((time.time() - start_time) * 1000)

            text = (response.choices[0].message.content or "").strip()

            tokens_input = response.usage.prompt_tokens if response.usage else 0
            tokens_output = response.usage.completion_tokens if response.usage else 0

            logger.info(
                f"Generated response: model={model}, "
                f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
                f"latency={latency_ms}ms"
            )

            return LLMResponse(
                text=text,
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                latency_ms=latency_ms,
                model_used=model
            )

        except RateLimitError as e:
            raise self._error(
                RATE_LIMIT_ERROR,
                "Rate limit exceeded. Please try again in a few moments.",
                model, start_time, e
            )
        except AuthenticationError as e:
            raise self._error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                model, start_time, e
            )
        except APITimeoutError as e:
            raise self._error("TIMEOUT_ERROR", "Request timed out. Please try again.", model, start_time, e)
        except APIError as e:
            raise self._error("API_ERROR", f"Groq API error: {str(e)}", model, start_time, e)
        except Exception as e:
            raise self._error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                model, start_time, e
            )

    @staticmethod
    def _error(code: str, message: str, model: str, start_time: float, cause: Exception) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": model,
                "latency_ms": latency_ms,
                "original_error": str(cause),
                "error_type": type(cause).__name__
            }
        )
        if code == RATE_LIMIT_ERROR:
            error.details["retry_after"] = 60
        logger.error(
            f"{code}: model={model}, latency={latency_ms}ms, error={cause}",
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)
