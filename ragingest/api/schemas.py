"""Pydantic request/response schemas for the ragingest API.

Defines the public contract for every REST endpoint: upload, progress
snapshot, document listing, deletion, and health.  Convention: response
schemas end with "Response".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ragingest.models.document import FileType, ProcessingRecord, ProcessingStats
from ragingest.models.progress import ProcessingStage, ProcessingStatus


class UploadResponse(BaseModel):
    """Returned with ``202 Accepted`` once an upload has been queued."""

    document_id: str
    filename: str
    file_type: FileType
    status: ProcessingStatus = ProcessingStatus.PROCESSING
    message: str = "Document uploaded successfully and is being processed"


class ProgressStatusResponse(BaseModel):
    """Point-in-time progress snapshot for non-streaming clients."""

    document_id: str
    filename: str
    stage: ProcessingStage
    progress: int = Field(ge=0, le=100)
    status: ProcessingStatus
    error: str | None = None
    updated_at: datetime


class DocumentListResponse(BaseModel):
    """A user's most recent processing records, optionally with statistics."""

    documents: list[ProcessingRecord] = Field(default_factory=list)
    total: int = 0
    stats: ProcessingStats | None = None


class DeleteResponse(BaseModel):
    """Confirmation that a document and its chunks were removed."""

    document_id: str
    deleted: bool = True


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
