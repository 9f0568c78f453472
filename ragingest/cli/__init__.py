"""CLI tools for ragingest.

- ``python -m ragingest.cli.ingest`` -- ingest files or directories from
  disk, list and delete processed documents, and show statistics.
"""
