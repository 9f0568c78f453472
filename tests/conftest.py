"""Shared pytest fixtures for the ragingest test suite."""

from __future__ import annotations

import os
import tempfile
from collections import Counter
from pathlib import Path

import pytest

from ragingest.interfaces.embedding_provider import IEmbeddingProvider
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.providers.store.sqlite_document_store import SQLiteDocumentStore
from ragingest.utils.errors import TransientEmbeddingError

# Small vectors keep the SQLite rows readable in failures.
TEST_DIMENSION = 8


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic in-process embedder that records every call.

    Parameters
    ----------
    dimension:
        Width of the returned vectors.
    failing_texts:
        Texts whose every embed attempt raises ``TransientEmbeddingError``.
    wrong_dimension_texts:
        Texts for which a vector of the wrong width is returned.
    """

    def __init__(
        self,
        dimension: int = TEST_DIMENSION,
        failing_texts: set[str] | None = None,
        wrong_dimension_texts: set[str] | None = None,
    ) -> None:
        self._dimension = dimension
        self._failing = failing_texts or set()
        self._wrong_dimension = wrong_dimension_texts or set()
        self.attempts: Counter[str] = Counter()
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.attempts[text] += 1
        self.calls.append(text)
        if text in self._failing:
            raise TransientEmbeddingError("simulated outage", provider_name="fake")
        width = self._dimension + 1 if text in self._wrong_dimension else self._dimension
        seed = float(len(text) % 97)
        return [seed + i for i in range(width)]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


async def no_sleep(_: float) -> None:
    """Backoff sleep replacement that returns immediately."""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def progress_store() -> ProgressStore:
    return ProgressStore(retention=300.0, orphan_ttl=1800.0, sweep_interval=0.05)


@pytest.fixture
async def document_store():
    """SQLiteDocumentStore backed by a temporary database file."""
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    store = SQLiteDocumentStore(db_path=tmp.name, dimension=TEST_DIMENSION)
    await store.initialize()
    yield store
    os.unlink(tmp.name)
