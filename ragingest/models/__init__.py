"""Pydantic v2 data models for ragingest."""

from ragingest.models.document import (
    ChunkInput,
    DocumentChunk,
    FileType,
    ParsedDocument,
    ProcessingRecord,
    ProcessingStats,
)
from ragingest.models.progress import (
    ProcessingStage,
    ProcessingStatus,
    ProgressEvent,
    ProgressEventType,
    ProgressState,
)

__all__ = [
    "ChunkInput",
    "DocumentChunk",
    "FileType",
    "ParsedDocument",
    "ProcessingRecord",
    "ProcessingStage",
    "ProcessingStats",
    "ProcessingStatus",
    "ProgressEvent",
    "ProgressEventType",
    "ProgressState",
]
