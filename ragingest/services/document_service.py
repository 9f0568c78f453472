"""Upload boundary and document management.

:class:`DocumentService` is what the HTTP routes and the CLI talk to.  It
validates an upload synchronously (size, type, empty body, encoding),
creates the progress entry, hands the actual processing to the
:class:`TaskSupervisor` and returns immediately.  Listing, statistics and
deletion go straight to the record store.
"""

from __future__ import annotations

import uuid

import structlog
from pydantic import BaseModel, ConfigDict

from ragingest.interfaces.document_store import IRecordStore
from ragingest.models.document import FileType, ProcessingRecord, ProcessingStats
from ragingest.models.progress import ProgressState
from ragingest.pipeline.processor import DocumentProcessor
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.pipeline.supervisor import TaskSupervisor
from ragingest.services.parsers import detect_file_type
from ragingest.utils.errors import ValidationError
from ragingest.utils.logging import get_logger

MAX_LIST_LIMIT = 50


class AcceptedUpload(BaseModel):
    """What the caller learns when an upload is accepted."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    file_type: FileType


class DocumentService:
    """Accepts uploads and manages a user's processed documents.

    Parameters
    ----------
    processor:
        Template processor; a per-user copy runs each upload.
    progress_store:
        Receives the initial entry for every accepted upload.
    record_store:
        Source of processing records for listing, stats and deletion.
    supervisor:
        Owns the background processing tasks.
    max_upload_bytes:
        Largest accepted upload (default 50 MB).
    allowed_types:
        File types accepted at the boundary; all supported types by default.
    """

    def __init__(
        self,
        processor: DocumentProcessor,
        progress_store: ProgressStore,
        record_store: IRecordStore,
        supervisor: TaskSupervisor,
        max_upload_bytes: int = 50 * 1024 * 1024,
        allowed_types: frozenset[FileType] | None = None,
    ) -> None:
        self._processor = processor
        self._progress_store = progress_store
        self._record_store = record_store
        self._supervisor = supervisor
        self._max_upload_bytes = max_upload_bytes
        self._allowed_types = allowed_types or frozenset(FileType)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def validate_upload(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
    ) -> tuple[FileType, str]:
        """Check an upload and decode it.

        Returns
        -------
        tuple[FileType, str]
            The detected file type and the decoded text.

        Raises
        ------
        ValidationError
            413 when too large, 415 for an unsupported type, 400 for an
            empty body or text that is not UTF-8.
        """
        if len(data) > self._max_upload_bytes:
            raise ValidationError(
                f"File too large: {len(data)} bytes. Maximum: {self._max_upload_bytes} bytes.",
                status_code=413,
            )

        file_type = detect_file_type(filename, content_type)
        if file_type is None or file_type not in self._allowed_types:
            allowed = ", ".join(sorted(t.value for t in self._allowed_types))
            raise ValidationError(
                f"Unsupported file type for {filename!r}. Allowed: {allowed}",
                status_code=415,
            )

        if not data.strip():
            raise ValidationError("Uploaded file is empty", status_code=400)

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError(
                f"File is not valid UTF-8 text: {exc}", status_code=400
            ) from exc

        return file_type, text

    async def accept_upload(
        self,
        data: bytes,
        filename: str,
        user_id: str,
        content_type: str | None = None,
    ) -> AcceptedUpload:
        """Validate, register and start processing an upload in the background."""
        file_type, text = self.validate_upload(data, filename, content_type)
        document_id = uuid.uuid4().hex

        self._progress_store.initialize(document_id, filename)
        self._supervisor.spawn(
            self._processor.for_user(user_id).process(text, filename, file_type, document_id),
            name=f"process-{document_id}",
        )

        self._logger.info(
            "upload_accepted",
            document_id=document_id,
            filename=filename,
            file_type=file_type.value,
            size_bytes=len(data),
            user_id=user_id,
        )
        return AcceptedUpload(document_id=document_id, filename=filename, file_type=file_type)

    def get_progress(self, document_id: str) -> ProgressState | None:
        return self._progress_store.get(document_id)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def list_documents(self, user_id: str, limit: int = 10) -> list[ProcessingRecord]:
        """Return the user's most recent records (``limit`` clamped to 1..50)."""
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return await self._record_store.list_recent_records(user_id, limit)

    async def get_record(self, document_id: str) -> ProcessingRecord | None:
        return await self._record_store.get_record(document_id)

    async def get_stats(self, user_id: str) -> ProcessingStats:
        return await self._record_store.get_stats(user_id)

    async def delete_document(self, document_id: str, user_id: str) -> bool:
        """Delete a document owned by *user_id*; ``False`` if absent or not owned."""
        deleted = await self._record_store.delete_document(document_id, user_id)
        if deleted:
            self._progress_store.remove(document_id)
        return deleted
