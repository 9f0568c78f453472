"""Abstract provider interfaces (adapter seams) for external services."""

from ragingest.interfaces.document_store import IChunkStore, IRecordStore
from ragingest.interfaces.embedding_provider import IEmbeddingProvider

__all__ = ["IChunkStore", "IEmbeddingProvider", "IRecordStore"]
