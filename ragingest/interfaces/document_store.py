"""Abstract base classes for the durable document stores.

Two boundaries are defined:

* :class:`IChunkStore` -- append-only storage of embedded chunks, ordered
  and scoped to a document id.
* :class:`IRecordStore` -- one processing summary row per finished
  document, scoped to the uploading user, plus listing and deletion.

A single backend usually implements both (deleting a document must remove
its chunks and its record together), but the processor only depends on the
narrow interface it needs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragingest.models.document import (
    ChunkInput,
    DocumentChunk,
    ProcessingRecord,
    ProcessingStats,
)


class IChunkStore(ABC):
    """Contract for embedded-chunk persistence."""

    @abstractmethod
    async def insert_chunks(self, document_id: str, chunks: list[ChunkInput]) -> int:
        """Persist *chunks* for *document_id* in ``order`` sequence.

        Returns
        -------
        int
            Number of chunks actually stored.

        Raises
        ------
        ragingest.utils.errors.StorageError
            If the write fails or a vector does not match the store's
            configured dimensionality.
        """

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        """Return all chunks for *document_id* ordered by ``order``."""

    @abstractmethod
    async def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of *document_id*; return the number removed."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed embedding width this store accepts."""


class IRecordStore(ABC):
    """Contract for processing-record persistence."""

    @abstractmethod
    async def save_record(self, record: ProcessingRecord) -> ProcessingRecord:
        """Insert or replace the record for ``record.document_id``."""

    @abstractmethod
    async def get_record(self, document_id: str) -> ProcessingRecord | None:
        """Return the record for *document_id*, or ``None``."""

    @abstractmethod
    async def list_recent_records(self, user_id: str, limit: int = 10) -> list[ProcessingRecord]:
        """Return *user_id*'s records, newest first, at most *limit*."""

    @abstractmethod
    async def delete_document(self, document_id: str, user_id: str) -> bool:
        """Delete the record and chunks of *document_id* if owned by *user_id*.

        Returns ``False`` (and changes nothing) when the document does not
        exist or belongs to another user.
        """

    @abstractmethod
    async def get_stats(self, user_id: str | None = None) -> ProcessingStats:
        """Return record counts by status, optionally for one user."""
