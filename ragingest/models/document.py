"""Document, chunk and processing-record models.

``DocumentChunk`` rows and ``ProcessingRecord`` rows live in the durable
store and outlive the in-memory progress entry for the same document.
Chunks are append-only: they are written once, in ``order``, and never
updated.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ragingest.models.progress import ProcessingStatus


class FileType(str, Enum):  # noqa: UP042
    """Supported upload formats."""

    MARKDOWN = "markdown"
    JSON = "json"
    TEXT = "text"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class ChunkInput(BaseModel):
    """A chunk ready to be persisted: position, text and its embedding."""

    model_config = ConfigDict(frozen=True)

    order: int = Field(ge=0, description="Zero-based position within the document.")
    content: str = Field(min_length=1)
    embedding: list[float]


class DocumentChunk(BaseModel):
    """A persisted chunk of a document with its embedding vector."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    order: int = Field(ge=0)
    content: str
    embedding: list[float]
    created_at: datetime = Field(default_factory=_utcnow)


class ProcessingRecord(BaseModel):
    """Durable summary of a finished (completed or failed) processing run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    user_id: str
    filename: str
    file_type: FileType
    chunk_count: int = Field(default=0, ge=0)
    status: ProcessingStatus
    error: str | None = None
    # Parser output: front matter, JSON title/metadata, header and word counts.
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ProcessingStats(BaseModel):
    """Aggregate counts over a user's processing records."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    completed: int = 0
    failed: int = 0


class ParsedDocument(BaseModel):
    """Plain text extracted from an upload plus any front-matter metadata."""

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: dict = Field(default_factory=dict)
