"""Progress tracking models for in-flight document processing.

All models use frozen config -- the progress store never mutates a state
in place; each update produces a new :class:`ProgressState` via
``model_copy(update={...})``.  A reader holding a snapshot therefore never
observes a half-applied update.

Stage order for a successful run::

    UPLOAD -> PARSING -> CHUNKING -> EMBEDDING -> STORAGE -> COMPLETE

Any failure jumps straight to ``ERROR`` with status ``FAILED``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProcessingStage(str, Enum):  # noqa: UP042
    """Processing phase a document is currently in."""

    UPLOAD = "upload"
    PARSING = "parsing"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORAGE = "storage"
    COMPLETE = "complete"
    ERROR = "error"


class ProcessingStatus(str, Enum):  # noqa: UP042
    """Coarse lifecycle status; ``COMPLETED`` and ``FAILED`` are terminal."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class ProgressState(BaseModel):
    """Snapshot of one document's processing progress."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    stage: ProcessingStage = ProcessingStage.UPLOAD
    progress: int = Field(default=0, ge=0, le=100)
    status: ProcessingStatus = ProcessingStatus.PENDING
    # Only set when status is FAILED.
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def fingerprint(self) -> tuple[str, int, str]:
        """Fields whose change is worth pushing to a subscriber."""
        return (self.stage.value, self.progress, self.status.value)


class ProgressEventType(str, Enum):  # noqa: UP042
    """Kind of frame sent on a progress stream."""

    CONNECTED = "connected"
    PROGRESS = "progress"


class ProgressEvent(BaseModel):
    """A single frame on the progress stream (SSE ``data:`` / WebSocket message)."""

    model_config = ConfigDict(frozen=True)

    event: ProgressEventType = ProgressEventType.PROGRESS
    document_id: str
    stage: ProcessingStage | None = None
    progress: int | None = None
    status: ProcessingStatus | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_state(cls, state: ProgressState) -> ProgressEvent:
        return cls(
            event=ProgressEventType.PROGRESS,
            document_id=state.document_id,
            stage=state.stage,
            progress=state.progress,
            status=state.status,
            error=state.error,
            timestamp=state.updated_at,
        )

    @classmethod
    def connected(cls, document_id: str, state: ProgressState | None = None) -> ProgressEvent:
        """Build the connection-established frame, carrying the current state if known."""
        if state is None:
            return cls(event=ProgressEventType.CONNECTED, document_id=document_id)
        return cls(
            event=ProgressEventType.CONNECTED,
            document_id=document_id,
            stage=state.stage,
            progress=state.progress,
            status=state.status,
            error=state.error,
        )
