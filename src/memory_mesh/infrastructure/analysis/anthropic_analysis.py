"""Anthropic-backed text analysis: keywords, emotional valence and summaries."""

import re

import anthropic

from memory_mesh.core.base import AIServiceErrorDetails, ErrorLevel, ServiceErrorDetails
from memory_mesh.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from memory_mesh.core.config import settings
from memory_mesh.core.decorators import with_error_handling
from memory_mesh.core.errors import (
    AuthenticationError,
    ProcessingError,
    RateLimitError,
    ServiceError,
    TimeoutError,
)
from memory_mesh.core.logging import get_logger

logger = get_logger(__name__)

KEYWORDS_PROMPT = "Extract 3-5 key words or phrases from the text. Return only comma-separated keywords."
EMOTION_PROMPT = (
    "Analyze the emotional valence of this text. "
    "Return only a number between -1 (very negative) and 1 (very positive)."
)
SUMMARY_PROMPT = "Create a concise 1-2 sentence summary capturing the essence of the text. Be specific and informative."
MULTI_SUMMARY_PROMPT = "You create concise, coherent summaries of multiple related texts."

SUMMARY_MAX_TOKENS = 120

NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class AnthropicAnalysisService:
    """Anthropic implementation of ``AnalysisService``.

    API failures are mapped to our error types and propagate after retries;
    only an unparseable valence answer is tolerated (scored neutral).
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise AuthenticationError(
                message="Anthropic API key not found in settings",
                details=ServiceErrorDetails(
                    source="AnthropicAnalysisService",
                    operation="initialization",
                    service_name="Anthropic",
                ),
            )

        self.model = model or settings.anthropic_model
        self.client = anthropic.AsyncAnthropic(api_key=api_key)

        self._circuit_breaker: CircuitBreaker[str] = CircuitBreaker(
            name="anthropic_api",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=3,
            initial_delay=1.0,
            max_delay=30.0,
        )

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def extract_keywords(self, text: str) -> list[str]:
        answer = await self._complete(KEYWORDS_PROMPT, text, max_tokens=50)
        return [keyword.strip() for keyword in answer.split(",") if keyword.strip()]

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def score_emotion(self, text: str) -> float:
        answer = await self._complete(EMOTION_PROMPT, text, max_tokens=10)
        match = NUMBER.search(answer)
        if match is None:
            logger.warning(f"Unparseable valence answer {answer!r}, scoring neutral")
            return 0.0
        return max(-1.0, min(1.0, float(match.group())))

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def summarize(self, text: str) -> str:
        return await self._complete(SUMMARY_PROMPT, text, max_tokens=SUMMARY_MAX_TOKENS)

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def summarize_many(self, texts: list[str]) -> str:
        numbered = "\n\n".join(f"Memory {index}: {text}" for index, text in enumerate(texts, start=1))
        prompt = f"Please create a coherent summary of these {len(texts)} related memories:\n\n{numbered}"
        return await self._complete(MULTI_SUMMARY_PROMPT, prompt, max_tokens=settings.analysis_max_tokens)

    async def _complete(self, system: str, text: str, max_tokens: int) -> str:
        answer = await self._retry_handler.call_async(self._call_anthropic_api, system, text, max_tokens)
        if not answer:
            raise ProcessingError(
                message="Anthropic returned an empty answer",
                details={"source": "anthropic_analysis", "operation": "complete", "model": self.model},
            )
        return answer

    async def _call_anthropic_api(self, system: str, text: str, max_tokens: int) -> str:
        """Single messages request; wrapped by the circuit breaker."""
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=0.3,
                system=system,
                messages=[{"role": "user", "content": text}],
            )
        except anthropic.APIError as e:
            raise self._map_error(e, max_tokens) from e

        return "".join(block.text for block in response.content if block.type == "text").strip()

    def _map_error(
        self, e: anthropic.APIError, max_tokens: int
    ) -> RateLimitError | TimeoutError | AuthenticationError | ServiceError:
        status_code = getattr(e, "status_code", None)
        details = AIServiceErrorDetails(
            source="AnthropicAnalysisService",
            operation="messages.create",
            service_name="Anthropic",
            endpoint="/v1/messages",
            status_code=status_code,
            model_name=self.model,
            max_tokens=max_tokens,
        )
        if isinstance(e, anthropic.RateLimitError):
            return RateLimitError(message="Rate limit exceeded for analysis API", details=details)
        if isinstance(e, anthropic.APITimeoutError | anthropic.APIConnectionError):
            return TimeoutError(message="Analysis API request timed out", details=details)
        if isinstance(e, anthropic.AuthenticationError):
            return AuthenticationError(message="Authentication failed for analysis API", details=details)
        return ServiceError(message=f"Analysis request failed: {e!s}", details=details)
