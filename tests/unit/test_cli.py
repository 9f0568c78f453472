"""Unit tests for the ingestion CLI argument parser and commands."""

from __future__ import annotations

import argparse

import pytest

from ragingest.cli.ingest import (
    _build_parser,
    _handle_delete,
    _handle_list,
    _handle_stats,
    _run,
)
from ragingest.config.settings import Settings
from ragingest.models.document import FileType, ProcessingRecord
from ragingest.models.progress import ProcessingStatus


class TestParser:
    def test_file_command(self) -> None:
        args = _build_parser().parse_args(["file", "--path", "doc.md", "--user", "alice"])
        assert args.command == "file"
        assert args.path == "doc.md"
        assert args.user == "alice"

    def test_directory_default_user(self) -> None:
        args = _build_parser().parse_args(["directory", "--path", "docs/"])
        assert args.command == "directory"
        assert args.user == "cli"

    def test_list_limit(self) -> None:
        args = _build_parser().parse_args(["list", "--limit", "25"])
        assert args.limit == 25

    def test_delete_requires_id(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["delete"])

    def test_stats_without_user(self) -> None:
        args = _build_parser().parse_args(["stats"])
        assert args.user is None

    def test_no_command(self) -> None:
        args = _build_parser().parse_args([])
        assert args.command is None


class TestCommands:
    @pytest.mark.asyncio
    async def test_list_prints_records(self, document_store, capsys) -> None:
        await document_store.save_record(
            ProcessingRecord(
                document_id="doc-1",
                user_id="alice",
                filename="guide.md",
                file_type=FileType.MARKDOWN,
                chunk_count=4,
                status=ProcessingStatus.COMPLETED,
            )
        )
        args = argparse.Namespace(user="alice", limit=10)
        assert await _handle_list(args, {"store": document_store}) == 0
        out = capsys.readouterr().out
        assert "doc-1" in out
        assert "guide.md" in out

    @pytest.mark.asyncio
    async def test_delete_unknown_returns_error(self, document_store) -> None:
        args = argparse.Namespace(id="ghost", user="alice")
        assert await _handle_delete(args, {"store": document_store}) == 1

    @pytest.mark.asyncio
    async def test_stats_output(self, document_store, capsys) -> None:
        args = argparse.Namespace(user=None)
        assert await _handle_stats(args, {"store": document_store}) == 0
        assert "all users" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_ingest_refuses_mismatched_embedding_width(self, tmp_path, capsys) -> None:
        settings = Settings(
            _env_file=None,
            cohere_api_key="",
            openai_api_key="sk-key",
            openai_embedding_model="text-embedding-ada-002",
            embedding_dimension=1024,
            document_db_path=str(tmp_path / "cli.db"),
        )
        args = argparse.Namespace(command="file", path=str(tmp_path / "doc.md"), user="cli")

        assert await _run(args, settings) == 1
        assert "1536-dimensional" in capsys.readouterr().err
