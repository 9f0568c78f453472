"""Standalone CLI for ingesting documents from disk.

Runs files through the same validation, processor and stores as the HTTP
API, printing live progress from the progress stream.

Usage::

    python -m ragingest.cli.ingest file --path docs/manual.md --user alice

    python -m ragingest.cli.ingest directory --path docs/ --user alice

    python -m ragingest.cli.ingest list --user alice --limit 20

    python -m ragingest.cli.ingest delete --id 3f2a... --user alice

    python -m ragingest.cli.ingest stats --user alice

No extra dependencies beyond the core project requirements.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from ragingest.config.settings import Settings

_SUPPORTED_SUFFIXES = (".md", ".markdown", ".json", ".txt")


def _build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct the store, processor and services the commands need.

    Heavy imports are deferred so ``--help`` stays fast.
    """
    from ragingest.config.loader import load_config
    from ragingest.pipeline.processor import DocumentProcessor, ProcessorConfig
    from ragingest.pipeline.progress_store import ProgressStore
    from ragingest.pipeline.supervisor import TaskSupervisor
    from ragingest.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
    from ragingest.providers.embedding.openai_embedding_provider import (
        OpenAIEmbeddingProvider,
    )
    from ragingest.providers.store.sqlite_document_store import SQLiteDocumentStore
    from ragingest.services.document_service import DocumentService
    from ragingest.services.progress_stream import ProgressStreamServer

    app_config = load_config(settings=app_settings)
    processing = app_config.get("processing", {})

    if app_settings.cohere_api_key:
        embedding_provider = CohereEmbeddingProvider(settings=app_settings)
    elif app_settings.openai_api_key:
        embedding_provider = OpenAIEmbeddingProvider(settings=app_settings)
    else:
        embedding_provider = None

    store = SQLiteDocumentStore(
        db_path=app_settings.document_db_path,
        dimension=app_settings.embedding_dimension,
    )
    progress_store = ProgressStore(retention=app_settings.progress_retention_seconds)
    supervisor = TaskSupervisor()

    service = None
    if embedding_provider is not None:
        processor_config = ProcessorConfig(
            **{
                **ProcessorConfig.from_settings(app_settings).model_dump(),
                "chunk_size": processing.get("chunk_size", app_settings.chunk_size),
                "chunk_overlap": processing.get("chunk_overlap", app_settings.chunk_overlap),
            }
        )
        processor = DocumentProcessor(
            config=processor_config,
            embedding_provider=embedding_provider,
            chunk_store=store,
            record_store=store,
            progress_store=progress_store,
        )
        service = DocumentService(
            processor=processor,
            progress_store=progress_store,
            record_store=store,
            supervisor=supervisor,
            max_upload_bytes=app_settings.max_upload_bytes,
        )

    return {
        "embedding_provider": embedding_provider,
        "store": store,
        "service": service,
        "supervisor": supervisor,
        "stream": ProgressStreamServer(
            progress_store, poll_interval=app_settings.progress_poll_interval_seconds
        ),
    }


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _ingest_one(path: Path, user_id: str, components: dict[str, Any]) -> bool:
    """Ingest one file, printing progress; return ``True`` on success."""
    from ragingest.utils.errors import ValidationError

    service = components["service"]
    stream = components["stream"]

    print(f"Ingesting: {path}")
    try:
        accepted = await service.accept_upload(path.read_bytes(), path.name, user_id=user_id)
    except ValidationError as exc:
        print(f"  Rejected ({exc.status_code}): {exc.message}")
        return False

    last_error: str | None = None
    async for event in stream.subscribe(accepted.document_id):
        stage = event.stage.value if event.stage else "-"
        print(f"  [{event.progress or 0:>3}%] {stage}")
        last_error = event.error

    await components["supervisor"].drain()
    record = await service.get_record(accepted.document_id)
    if record is None or record.status.value != "completed":
        print(f"  Failed: {last_error or (record.error if record else 'unknown error')}")
        return False

    print(f"  Document ID: {record.document_id}")
    print(f"  Chunks:      {record.chunk_count}")
    return True


async def _handle_file(args: argparse.Namespace, components: dict[str, Any]) -> int:
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: not a file: {path}", file=sys.stderr)
        return 1
    return 0 if await _ingest_one(path, args.user, components) else 1


async def _handle_directory(args: argparse.Namespace, components: dict[str, Any]) -> int:
    root = Path(args.path)
    if not root.is_dir():
        print(f"Error: not a directory: {root}", file=sys.stderr)
        return 1

    files = sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in _SUPPORTED_SUFFIXES
    )
    print(f"Ingesting directory: {root} ({len(files)} files)")
    succeeded = 0
    for path in files:
        if await _ingest_one(path, args.user, components):
            succeeded += 1

    print("\nDirectory ingestion complete:")
    print(f"  Files processed: {len(files)}")
    print(f"  Succeeded:       {succeeded}")
    print(f"  Failed:          {len(files) - succeeded}")
    return 0 if succeeded == len(files) else 1


async def _handle_list(args: argparse.Namespace, components: dict[str, Any]) -> int:
    records = await components["store"].list_recent_records(args.user, min(args.limit, 50))
    if not records:
        print(f"No documents for user '{args.user}'.")
        return 0
    for record in records:
        print(
            f"{record.document_id}  {record.status.value:<9}  "
            f"{record.chunk_count:>5} chunks  {record.filename}"
        )
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    deleted = await components["store"].delete_document(args.id, args.user)
    if not deleted:
        print(f"Document {args.id} not found for user '{args.user}'.", file=sys.stderr)
        return 1
    print(f"Deleted document {args.id}.")
    return 0


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    stats = await components["store"].get_stats(args.user)
    scope = f"user '{args.user}'" if args.user else "all users"
    print(f"Processing Statistics ({scope})")
    print("=" * 40)
    print(f"  Total documents:  {stats.total}")
    print(f"  Completed:        {stats.completed}")
    print(f"  Failed:           {stats.failed}")
    return 0


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    components = _build_components(app_settings)
    await components["store"].initialize()

    try:
        if args.command in ("file", "directory"):
            if components["service"] is None:
                print(
                    "Error: no embedding provider configured. "
                    "Set COHERE_API_KEY or OPENAI_API_KEY.",
                    file=sys.stderr,
                )
                return 1
            provider_dimension = components["embedding_provider"].get_dimension()
            if provider_dimension != app_settings.embedding_dimension:
                print(
                    f"Error: embedding model produces {provider_dimension}-dimensional "
                    f"vectors but EMBEDDING_DIMENSION is {app_settings.embedding_dimension}.",
                    file=sys.stderr,
                )
                return 1
            if args.command == "file":
                return await _handle_file(args, components)
            return await _handle_directory(args, components)
        if args.command == "list":
            return await _handle_list(args, components)
        if args.command == "delete":
            return await _handle_delete(args, components)
        return await _handle_stats(args, components)
    finally:
        if components["embedding_provider"] is not None:
            await components["embedding_provider"].aclose()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m ragingest.cli.ingest",
        description="Ingest documents and manage processing records.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    file_parser = subparsers.add_parser("file", help="Ingest a single document")
    file_parser.add_argument("--path", required=True, help="Path to a .md, .json or .txt file")
    file_parser.add_argument("--user", default="cli", help="Owning user id (default: cli)")

    dir_parser = subparsers.add_parser("directory", help="Ingest all documents in a directory")
    dir_parser.add_argument("--path", required=True, help="Directory path (searched recursively)")
    dir_parser.add_argument("--user", default="cli", help="Owning user id (default: cli)")

    list_parser = subparsers.add_parser("list", help="List recently processed documents")
    list_parser.add_argument("--user", default="cli", help="User id (default: cli)")
    list_parser.add_argument("--limit", type=int, default=10, help="Maximum rows (max 50)")

    delete_parser = subparsers.add_parser("delete", help="Delete a document and its chunks")
    delete_parser.add_argument("--id", required=True, help="Document id")
    delete_parser.add_argument("--user", default="cli", help="Owning user id (default: cli)")

    stats_parser = subparsers.add_parser("stats", help="Show processing statistics")
    stats_parser.add_argument("--user", default=None, help="Restrict to one user id")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ingestion tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from ragingest.utils.logging import configure_logging

    app_settings = Settings()
    configure_logging(log_level="WARNING")
    sys.exit(asyncio.run(_run(args, app_settings)))


if __name__ == "__main__":
    main()
