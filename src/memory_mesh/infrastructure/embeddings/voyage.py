"""Voyage AI embedding service."""

from typing import Any, cast

import voyageai
import voyageai.error

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

# Voyage accepts at most this many texts per embed request
MAX_BATCH_SIZE = 128

MODEL_DIMENSIONS = {
    "voyage-3-large": 1024,
    "voyage-3": 1024,
    "voyage-3-lite": 512,
    "voyage-3.5": 1024,
    "voyage-3.5-lite": 1024,
    "voyage-large-2": 1536,
    "voyage-code-3": 1024,
}


class VoyageEmbeddingService:
    """Voyage AI implementation of ``EmbeddingService``.

    Calls go through a retry handler backed by a circuit breaker: rate limits
    and timeouts are retried with backoff, and repeated failures open the
    circuit so later calls fail fast with a ServiceError.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        """Initialize the Voyage embedding service.

        Args:
            model: Optional model override (defaults to ``settings.voyage_model``)
            api_key: Optional key override (defaults to ``settings.voyage_api_key``)

        Raises:
            AuthenticationError: If the API key is not configured
        """
        api_key = api_key or settings.voyage_api_key
        if not api_key:
            raise AuthenticationError(
                message="Voyage API key not found in settings",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="initialization",
                    service_name="Voyage AI",
                ),
            )

        self.model = model or settings.voyage_model
        # voyageai does not ship type stubs for its client
        self.client: Any = voyageai.AsyncClient(api_key=api_key)

        self._circuit_breaker: CircuitBreaker[list[list[float]]] = CircuitBreaker(
            name="voyage_api",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=3,
            initial_delay=1.0,
            backoff_factor=2.0,
            max_delay=30.0,
            retryable_exceptions=(RateLimitError, TimeoutError),
        )

    @with_error_handling(error_level=ErrorLevel.ERROR)
    async def embed_text(self, text: str) -> list[float]:
        """Generate an embedding vector for one text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embedding vectors for a batch of texts.

        Args:
            texts: List of texts to embed; none may be blank

        Returns:
            One embedding per input text, in input order

        Raises:
            ProcessingError: Blank input or an incomplete response
            ServiceError: If the circuit is open or the service fails
        """
        if not texts:
            return []

        blank = [index for index, text in enumerate(texts) if not text.strip()]
        if blank:
            raise ProcessingError(
                message="Cannot embed empty text",
                details={"source": "voyage_embedding", "operation": "embed_batch", "blank_indices": blank},
            )

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), MAX_BATCH_SIZE):
            batch = texts[start : start + MAX_BATCH_SIZE]
            embeddings.extend(await self._retry_handler.call_async(self._call_voyage_api, batch))

        logger.debug(f"Embedded {len(texts)} texts with {self.model}")
        return embeddings

    async def _call_voyage_api(self, texts: list[str]) -> list[list[float]]:
        """Single embed request; wrapped by the circuit breaker."""
        try:
            response = await self.client.embed(texts=texts, model=self.model)
        except voyageai.error.VoyageError as e:
            raise self._map_error(e, texts) from e

        embeddings = getattr(response, "embeddings", [])
        if not embeddings or len(embeddings) != len(texts):
            raise ProcessingError(
                message="Voyage API returned incomplete embeddings",
                details={
                    "source": "voyage_embedding",
                    "operation": "embed_batch",
                    "expected": len(texts),
                    "received": len(embeddings or []),
                },
            )

        return [cast("list[float]", embedding) for embedding in embeddings]

    def _map_error(
        self, e: Exception, texts: list[str]
    ) -> RateLimitError | TimeoutError | AuthenticationError | ServiceError:
        """Map Voyage SDK errors to our exception types."""

        def details(status_code: int | None) -> AIServiceErrorDetails:
            return AIServiceErrorDetails(
                source="VoyageEmbeddingService",
                operation="embed_batch",
                service_name="Voyage AI",
                endpoint="/embeddings",
                status_code=status_code,
                model_name=self.model,
                input_count=len(texts),
            )

        if isinstance(e, voyageai.error.RateLimitError):
            return RateLimitError(message="Rate limit exceeded for embeddings API", details=details(429))
        if isinstance(e, voyageai.error.Timeout | voyageai.error.APIConnectionError):
            return TimeoutError(message="Embeddings API request timed out", details=details(408))
        if isinstance(e, voyageai.error.AuthenticationError):
            return AuthenticationError(message="Authentication failed for embeddings API", details=details(401))
        return ServiceError(message=f"Failed to generate embeddings: {e!s}", details=details(None))

    def get_model_dimensions(self) -> int:
        """Dimensionality of the configured model's vectors."""
        return MODEL_DIMENSIONS.get(self.model, settings.embedding_dimensions)
