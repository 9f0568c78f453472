"""Document processor: parse, chunk, embed, store, with live progress.

Runs one uploaded document through the ingestion pipeline and reports each
step to the :class:`ProgressStore`:

    parsing (5) -> chunking (15) -> embedding (20..80) -> storage (85)
    -> complete (100)

Embedding is the slow step.  Chunks are embedded in batches of
``batch_size``; inside a batch the requests run concurrently (bounded by a
semaphore) and results are kept by chunk index, so the stored order never
depends on completion order.  Each chunk gets one attempt plus
``max_embedding_retries`` retries with exponential backoff.

:meth:`DocumentProcessor.process` never raises.  Every failure is written
to the progress store as stage ``error`` / status ``failed`` and to a
failed :class:`ProcessingRecord`, because the caller answered the upload
request long before the run finished.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ragingest.config.settings import Settings
from ragingest.interfaces.document_store import IChunkStore, IRecordStore
from ragingest.interfaces.embedding_provider import IEmbeddingProvider
from ragingest.models.document import ChunkInput, FileType, ProcessingRecord
from ragingest.models.progress import ProcessingStage, ProcessingStatus
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.services.chunker import TextChunker
from ragingest.services.parsers import parse_document
from ragingest.utils.concurrency import retry_with_backoff, throttled_gather
from ragingest.utils.errors import (
    EmbeddingError,
    ProcessingError,
    StorageError,
    StructuralEmbeddingError,
    TransientEmbeddingError,
)
from ragingest.utils.logging import get_logger

# Progress checkpoints (percent).
_PARSING_PROGRESS = 5
_CHUNKING_PROGRESS = 15
_EMBEDDING_START = 20
_EMBEDDING_SPAN = 60
_STORAGE_PROGRESS = 85
_COMPLETE_PROGRESS = 100


class ProcessorConfig(BaseModel):
    """Tuning knobs for one :class:`DocumentProcessor`."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=512, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    max_embedding_retries: int = Field(default=3, ge=0)
    batch_size: int = Field(default=5, gt=0)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0)
    embedding_dimension: int = Field(default=1024, gt=0)
    cleanup_partial_chunks: bool = False
    user_id: str = "anonymous"

    @model_validator(mode="after")
    def _check_overlap(self) -> ProcessorConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings, user_id: str = "anonymous") -> ProcessorConfig:
        return cls(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            max_embedding_retries=settings.max_embedding_retries,
            batch_size=settings.embedding_batch_size,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
            embedding_dimension=settings.embedding_dimension,
            cleanup_partial_chunks=settings.cleanup_partial_chunks,
            user_id=user_id,
        )


def _is_retryable(exc: BaseException) -> bool:
    """Transient embedding failures and unclassified errors are retried.

    Structural failures and other classified embedding errors (rejected
    credentials, malformed requests) fail the chunk on the first attempt.
    """
    if isinstance(exc, TransientEmbeddingError):
        return True
    return not isinstance(exc, EmbeddingError)


class DocumentProcessor:
    """Orchestrates parse -> chunk -> embed -> store for one document at a time.

    Parameters
    ----------
    config:
        Chunking, retry and batching configuration plus the owning user.
    embedding_provider:
        Produces one vector per chunk.
    chunk_store:
        Receives the embedded chunks.
    record_store:
        Receives the completed or failed processing summary.
    progress_store:
        Receives every stage transition.
    sleep:
        Backoff sleep coroutine; tests inject a no-op.

    Raises
    ------
    ragingest.utils.errors.ConfigurationError
        If the chunking parameters are invalid.
    """

    def __init__(
        self,
        config: ProcessorConfig,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        record_store: IRecordStore,
        progress_store: ProgressStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._embedder = embedding_provider
        self._chunk_store = chunk_store
        self._record_store = record_store
        self._progress_store = progress_store
        self._sleep = sleep
        self._chunker = TextChunker(chunk_size=config.chunk_size, overlap=config.chunk_overlap)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def config(self) -> ProcessorConfig:
        return self._config

    def for_user(self, user_id: str) -> DocumentProcessor:
        """Return a processor sharing this one's collaborators, owned by *user_id*."""
        return DocumentProcessor(
            config=self._config.model_copy(update={"user_id": user_id}),
            embedding_provider=self._embedder,
            chunk_store=self._chunk_store,
            record_store=self._record_store,
            progress_store=self._progress_store,
            sleep=self._sleep,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def process(
        self,
        content: str,
        filename: str,
        file_type: FileType,
        document_id: str,
    ) -> ProcessingRecord | None:
        """Run the full pipeline for one document.

        Parameters
        ----------
        content:
            Decoded upload text.
        filename:
            Original filename (display only).
        file_type:
            Format used to pick the parser.
        document_id:
            Id whose progress entry was created by the upload boundary.

        Returns
        -------
        ProcessingRecord | None
            The completed record, or ``None`` when the run failed.  The
            failure reason is available from the progress store.
        """
        log = self._logger.bind(document_id=document_id, filename=filename)
        started = time.monotonic()
        storage_started = False
        metadata: dict = {}

        try:
            self._report(
                document_id,
                ProcessingStage.PARSING,
                _PARSING_PROGRESS,
                ProcessingStatus.PROCESSING,
            )
            parsed = parse_document(content, file_type)
            metadata = parsed.metadata
            chunks = self._chunker.chunk(parsed.text)
            if not chunks:
                raise ProcessingError("no content extracted")

            self._report(document_id, ProcessingStage.CHUNKING, _CHUNKING_PROGRESS)
            log.info("document_chunked", chunks=len(chunks), file_type=file_type.value)

            self._report(document_id, ProcessingStage.EMBEDDING, _EMBEDDING_START)
            embeddings = await self._embed_all(document_id, chunks)

            self._report(document_id, ProcessingStage.STORAGE, _STORAGE_PROGRESS)
            storage_started = True
            stored = await self._chunk_store.insert_chunks(
                document_id,
                [
                    ChunkInput(order=index, content=text, embedding=vector)
                    for index, (text, vector) in enumerate(zip(chunks, embeddings))
                ],
            )
            if stored != len(chunks):
                raise StorageError(f"Stored {stored} of {len(chunks)} chunks")

            record = await self._record_store.save_record(
                ProcessingRecord(
                    document_id=document_id,
                    user_id=self._config.user_id,
                    filename=filename,
                    file_type=file_type,
                    chunk_count=stored,
                    status=ProcessingStatus.COMPLETED,
                    metadata=metadata,
                )
            )

            self._report(
                document_id,
                ProcessingStage.COMPLETE,
                _COMPLETE_PROGRESS,
                ProcessingStatus.COMPLETED,
            )
            log.info(
                "document_processed",
                chunks=stored,
                elapsed_s=round(time.monotonic() - started, 2),
            )
            return record

        except asyncio.CancelledError:
            self._fail(document_id, "processing cancelled")
            log.warning("document_processing_cancelled")
            raise
        except Exception as exc:
            log.error(
                "document_processing_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                elapsed_s=round(time.monotonic() - started, 2),
            )
            self._fail(document_id, str(exc))
            if storage_started and self._config.cleanup_partial_chunks:
                await self._discard_partial_chunks(document_id)
            await self._save_failed_record(
                document_id, filename, file_type, str(exc), metadata
            )
            return None

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def _embed_all(self, document_id: str, chunks: list[str]) -> list[list[float]]:
        """Embed every chunk, batch by batch, keeping results in chunk order."""
        total = len(chunks)
        batch_size = self._config.batch_size
        results: list[list[float] | None] = [None] * total
        semaphore = asyncio.Semaphore(batch_size)
        done = 0

        async def _embed_and_report(index: int) -> None:
            nonlocal done
            results[index] = await self._embed_chunk(index, chunks[index])
            done += 1
            self._report(
                document_id,
                ProcessingStage.EMBEDDING,
                _EMBEDDING_START + (_EMBEDDING_SPAN * done) // total,
            )

        for batch_start in range(0, total, batch_size):
            indices = range(batch_start, min(batch_start + batch_size, total))
            outcomes = await throttled_gather(
                [_embed_and_report(i) for i in indices],
                semaphore,
                return_exceptions=True,
            )
            # Surface the lowest failing index once the whole batch settled.
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

        return [vector for vector in results if vector is not None]

    async def _embed_chunk(self, index: int, text: str) -> list[float]:
        attempts = 0
        dimension = self._config.embedding_dimension

        async def _attempt() -> list[float]:
            nonlocal attempts
            attempts += 1
            vector = await self._embedder.embed(text)
            if len(vector) != dimension:
                raise StructuralEmbeddingError(
                    message=f"Expected {dimension}-dimensional embedding, got {len(vector)}",
                    expected=dimension,
                    actual=len(vector),
                )
            return vector

        def _on_retry(attempt: int, exc: BaseException) -> None:
            self._logger.warning(
                "embedding_retry",
                chunk=index,
                attempt=attempt,
                max_retries=self._config.max_embedding_retries,
                error=str(exc),
            )

        try:
            return await retry_with_backoff(
                _attempt,
                max_retries=self._config.max_embedding_retries,
                base_delay=self._config.retry_base_delay,
                max_delay=self._config.retry_max_delay,
                is_retryable=_is_retryable,
                on_retry=_on_retry,
                sleep=self._sleep,
            )
        except Exception as exc:
            noun = "attempt" if attempts == 1 else "attempts"
            raise EmbeddingError(
                f"Failed to embed chunk {index} after {attempts} {noun}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _report(
        self,
        document_id: str,
        stage: ProcessingStage,
        progress: int,
        status: ProcessingStatus | None = None,
    ) -> None:
        self._progress_store.update(document_id, stage=stage, progress=progress, status=status)

    def _fail(self, document_id: str, error: str) -> None:
        self._progress_store.update(
            document_id,
            stage=ProcessingStage.ERROR,
            status=ProcessingStatus.FAILED,
            error=error,
        )

    async def _discard_partial_chunks(self, document_id: str) -> None:
        try:
            removed = await self._chunk_store.delete_chunks(document_id)
            self._logger.info("partial_chunks_discarded", document_id=document_id, count=removed)
        except Exception as exc:
            self._logger.warning(
                "partial_chunk_cleanup_failed", document_id=document_id, error=str(exc)
            )

    async def _save_failed_record(
        self,
        document_id: str,
        filename: str,
        file_type: FileType,
        error: str,
        metadata: dict,
    ) -> None:
        # Best effort: the progress store already carries the failure.
        try:
            await self._record_store.save_record(
                ProcessingRecord(
                    document_id=document_id,
                    user_id=self._config.user_id,
                    filename=filename,
                    file_type=file_type,
                    chunk_count=0,
                    status=ProcessingStatus.FAILED,
                    error=error,
                    metadata=metadata,
                )
            )
        except Exception as exc:
            self._logger.warning(
                "failed_record_not_saved", document_id=document_id, error=str(exc)
            )
