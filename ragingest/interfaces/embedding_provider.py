"""Abstract base class for text-embedding service providers.

Defines the per-chunk embedding contract used by the document processor.
Implementations wrap a remote embedding API (Cohere, OpenAI or any
OpenAI-compatible endpoint).  Providers are interchangeable as long as
they agree on :meth:`get_dimension`, which must match the width of the
chunk store's embedding column.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   CohereEmbeddingProvider: embed-english-v3.0 (1024 dims) over httpx
#   OpenAIEmbeddingProvider: text-embedding-3-* via the openai SDK
# Located in: ragingest/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    The processor calls :meth:`embed` once per chunk; batching and
    concurrency are processor policy, not part of this contract.
    """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate the embedding vector for one text chunk.

        Parameters
        ----------
        text:
            The chunk text.

        Returns
        -------
        list[float]
            A vector whose length equals :meth:`get_dimension`.

        Raises
        ------
        ragingest.utils.errors.TransientEmbeddingError
            Network failure, timeout, rate limiting or 5xx -- retryable.
        ragingest.utils.errors.StructuralEmbeddingError
            The service returned a vector of the wrong length -- not retryable.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality every vector from this provider has."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"cohere_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources held by the provider."""
