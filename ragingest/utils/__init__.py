"""Utility modules for ragingest.

- **errors** -- Domain exception hierarchy rooted at RagIngestError; the
  processor retries only TransientEmbeddingError.
- **concurrency** -- semaphore-bounded gather and exponential-backoff retry
  used by the document processor's embedding stage.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
"""

from ragingest.utils.concurrency import backoff_delay, retry_with_backoff, throttled_gather
from ragingest.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    NotFoundError,
    ProcessingError,
    RagIngestError,
    StorageError,
    StructuralEmbeddingError,
    TransientEmbeddingError,
    ValidationError,
)
from ragingest.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "NotFoundError",
    "ProcessingError",
    "RagIngestError",
    "StorageError",
    "StructuralEmbeddingError",
    "TransientEmbeddingError",
    "ValidationError",
    "backoff_delay",
    "configure_logging",
    "get_logger",
    "retry_with_backoff",
    "throttled_gather",
]
