"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Anyscale, Fireworks) via custom ``base_url`` and model name settings.
"""

from __future__ import annotations

import openai
import structlog

from ragingest.config.settings import Settings
from ragingest.interfaces.embedding_provider import IEmbeddingProvider
from ragingest.utils.errors import (
    EmbeddingError,
    StructuralEmbeddingError,
    TransientEmbeddingError,
)

logger = structlog.get_logger(logger_name=__name__)

# Native widths for models that cannot be shortened via ``dimensions``.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "WhereIsAI/UAE-Large-V1": 1024,
    "intfloat/multilingual-e5-large-instruct": 1024,
}

# text-embedding-3-* accept a ``dimensions`` parameter.
_SHORTENABLE_PREFIX = "text-embedding-3"


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` by default, asking the API for
    ``embedding_dimension`` wide vectors so the output fits the same store
    column as the Cohere provider.  When ``openai_base_url`` is configured
    the client points at that URL instead.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        if client is None:
            # Build client kwargs; add base_url only when configured.
            client_kwargs: dict = {
                "api_key": self._api_key,
                "timeout": settings.embedding_timeout,
                # Retries are owned by the document processor.
                "max_retries": 0,
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client = client

        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._shortenable = self._model.startswith(_SHORTENABLE_PREFIX)
        if self._shortenable:
            self._dimension = settings.embedding_dimension
        else:
            self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimension)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for a single chunk of text."""
        request: dict = {"input": [text], "model": self._model}
        if self._shortenable:
            request["dimensions"] = self._dimension

        try:
            response = await self._client.embeddings.create(**request)
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as exc:
            # APITimeoutError is a subclass of APIConnectionError.
            raise TransientEmbeddingError(
                message=f"{self._provider_label} transient error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.data:
            raise TransientEmbeddingError(
                message=f"{self._provider_label} returned no embedding",
                provider_name=self.get_provider_name(),
            )

        vector = list(response.data[0].embedding)
        if len(vector) != self._dimension:
            raise StructuralEmbeddingError(
                message=(
                    f"Expected {self._dimension}-dimensional embedding, "
                    f"got {len(vector)}"
                ),
                provider_name=self.get_provider_name(),
                expected=self._dimension,
                actual=len(vector),
            )

        logger.debug(
            "openai_embedding_created",
            model=self._model,
            provider=self._provider_label,
            chars=len(text),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.close()
