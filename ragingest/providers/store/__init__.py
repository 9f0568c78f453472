"""Document persistence providers (chunks and processing records).

SQLiteDocumentStore keeps embedded chunks and per-document processing
records in data/documents.db and implements both IChunkStore and
IRecordStore.
"""

from ragingest.providers.store.sqlite_document_store import SQLiteDocumentStore

__all__ = ["SQLiteDocumentStore"]
