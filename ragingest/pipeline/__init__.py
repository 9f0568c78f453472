"""Background processing components: progress store, supervisor, processor."""

from ragingest.pipeline.processor import DocumentProcessor, ProcessorConfig
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.pipeline.supervisor import TaskSupervisor

__all__ = [
    "DocumentProcessor",
    "ProcessorConfig",
    "ProgressStore",
    "TaskSupervisor",
]
