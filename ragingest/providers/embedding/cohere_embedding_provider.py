"""Cohere embedding provider adapter.

Calls the Cohere ``/v1/embed`` REST endpoint directly over ``httpx`` to
implement :class:`IEmbeddingProvider`.  Defaults to
``embed-english-v3.0``, which produces 1024-dimensional vectors.
"""

from __future__ import annotations

import httpx
import structlog

from ragingest.config.settings import Settings
from ragingest.interfaces.embedding_provider import IEmbeddingProvider
from ragingest.utils.errors import (
    EmbeddingError,
    StructuralEmbeddingError,
    TransientEmbeddingError,
)

logger = structlog.get_logger(logger_name=__name__)

_EMBED_PATH = "/v1/embed"

# Documents are embedded for storage; queries would use "search_query".
_INPUT_TYPE = "search_document"


class CohereEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Cohere embed API.

    Parameters
    ----------
    settings:
        Application settings (API key, base URL, model, dimension, timeout).
    http_client:
        Optional pre-built ``httpx.AsyncClient``.  When omitted the provider
        creates and owns one; tests inject a client with a mock transport.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.cohere_api_key
        self._model = settings.cohere_embedding_model
        self._dimension = settings.embedding_dimension
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.cohere_base_url,
            timeout=settings.embedding_timeout,
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for a single chunk of text."""
        try:
            response = await self._client.post(
                _EMBED_PATH,
                json={
                    "texts": [text],
                    "model": self._model,
                    "input_type": _INPUT_TYPE,
                },
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise TransientEmbeddingError(
                message=f"Cohere request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientEmbeddingError(
                message=f"Cohere returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )
        if response.status_code >= 400:
            raise EmbeddingError(
                message=f"Cohere rejected the request (HTTP {response.status_code}): {response.text}",
                provider_name=self.get_provider_name(),
            )

        try:
            vector = [float(v) for v in response.json()["embeddings"][0]]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TransientEmbeddingError(
                message=f"Malformed Cohere response: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(vector) != self._dimension:
            raise StructuralEmbeddingError(
                message=f"Expected {self._dimension}-dimensional embedding, got {len(vector)}",
                provider_name=self.get_provider_name(),
                expected=self._dimension,
                actual=len(vector),
            )

        logger.debug("cohere_embedding_created", model=self._model, chars=len(text))
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "cohere_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
