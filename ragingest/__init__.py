"""ragingest: document ingestion for retrieval with live progress reporting."""

__version__ = "0.1.0"
