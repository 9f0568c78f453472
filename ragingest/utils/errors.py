"""Custom exception hierarchy for ragingest.

All application exceptions inherit from :class:`RagIngestError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "cohere", "sqlite") caused the failure.

The hierarchy is organized by where in the ingestion flow the failure
happens:

    RagIngestError  (base -- catch-all for any ragingest error)
    +-- ValidationError            (bad upload: size, type, empty body)
    +-- EmbeddingError             (embedding call failed)
    |   +-- TransientEmbeddingError   (retryable: network, 5xx, rate limit)
    |   +-- StructuralEmbeddingError  (wrong vector dimensionality)
    +-- StorageError               (chunk / record persistence failed)
    +-- NotFoundError              (unknown document id)
    +-- ProcessingError            (parsing / chunking / orchestration)
    +-- ConfigurationError         (startup / invalid settings)

Only :class:`TransientEmbeddingError` is retried by the document processor.
Validation errors surface synchronously from the upload boundary; every
other error raised after a run has been accepted ends up in the progress
store's ``error`` field instead of propagating to a caller.
"""


class RagIngestError(Exception):
    """Base exception for all ragingest errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[cohere] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Upload boundary
# ---------------------------------------------------------------------------

class ValidationError(RagIngestError):
    """Raised when an upload is rejected before any processing starts."""

    def __init__(
        self,
        message: str = "Invalid upload",
        provider_name: str | None = None,
        status_code: int = 400,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int:
        """HTTP status the upload endpoint should answer with (400, 413, 415)."""
        return self._status_code


class NotFoundError(RagIngestError):
    """Raised when a document id is unknown to the store being queried."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------

class EmbeddingError(RagIngestError):
    """Raised when an embedding call fails."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TransientEmbeddingError(EmbeddingError):
    """An embedding failure that may succeed on retry.

    Network errors, timeouts, 5xx responses and rate limiting all map here.
    """

    def __init__(
        self,
        message: str = "Transient embedding failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StructuralEmbeddingError(EmbeddingError):
    """The embedding service returned a vector of the wrong dimensionality.

    Retrying cannot fix a structural defect, so the processor fails the
    chunk immediately.
    """

    def __init__(
        self,
        message: str = "Embedding has unexpected dimensionality",
        provider_name: str | None = None,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._expected = expected
        self._actual = actual

    @property
    def expected(self) -> int | None:
        return self._expected

    @property
    def actual(self) -> int | None:
        return self._actual


# ---------------------------------------------------------------------------
# Persistence / orchestration / configuration
# ---------------------------------------------------------------------------

class StorageError(RagIngestError):
    """Raised when persisting chunks or processing records fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProcessingError(RagIngestError):
    """Raised when a document cannot be parsed or chunked."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(RagIngestError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
