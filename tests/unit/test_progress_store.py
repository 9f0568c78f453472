"""Unit tests for the in-memory ProgressStore."""

from __future__ import annotations

import asyncio

import pytest

from ragingest.models.progress import ProcessingStage, ProcessingStatus
from ragingest.pipeline.progress_store import ProgressStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> ProgressStore:
    return ProgressStore(retention=300.0, orphan_ttl=1800.0, clock=clock)


# ======================================================================
# initialize / get
# ======================================================================


class TestInitialize:
    def test_initial_state(self, store: ProgressStore) -> None:
        state = store.initialize("doc-1", "notes.md")
        assert state.document_id == "doc-1"
        assert state.filename == "notes.md"
        assert state.stage == ProcessingStage.UPLOAD
        assert state.progress == 0
        assert state.status == ProcessingStatus.PENDING
        assert state.error is None

    def test_get_returns_snapshot(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "notes.md")
        assert store.get("doc-1") is not None
        assert store.exists("doc-1")

    def test_get_unknown_returns_none(self, store: ProgressStore) -> None:
        assert store.get("missing") is None
        assert not store.exists("missing")

    def test_duplicate_live_id_rejected(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        with pytest.raises(ValueError, match="already exists"):
            store.initialize("doc-1", "b.md")

    def test_reinitialize_after_expiry_allowed(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("doc-1", "a.md")
        clock.advance(1801)
        state = store.initialize("doc-1", "b.md")
        assert state.filename == "b.md"


# ======================================================================
# update
# ======================================================================


class TestUpdate:
    def test_unknown_id_returns_none_without_creating(self, store: ProgressStore) -> None:
        assert store.update("ghost", progress=50) is None
        assert store.get("ghost") is None
        assert store.size() == 0

    def test_partial_update_keeps_other_fields(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", stage=ProcessingStage.PARSING, status=ProcessingStatus.PROCESSING)
        state = store.update("doc-1", progress=15)
        assert state is not None
        assert state.stage == ProcessingStage.PARSING
        assert state.status == ProcessingStatus.PROCESSING
        assert state.progress == 15

    def test_update_returns_new_snapshot(self, store: ProgressStore) -> None:
        first = store.initialize("doc-1", "a.md")
        second = store.update("doc-1", progress=10)
        assert second is not first
        assert first.progress == 0

    def test_progress_is_clamped(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        assert store.update("doc-1", progress=250).progress == 100

    def test_progress_never_decreases(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=40, status=ProcessingStatus.PROCESSING)
        assert store.update("doc-1", progress=20).progress == 40

    def test_failure_may_lower_progress(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=60, status=ProcessingStatus.PROCESSING)
        state = store.update(
            "doc-1",
            stage=ProcessingStage.ERROR,
            progress=0,
            status=ProcessingStatus.FAILED,
            error="boom",
        )
        assert state.progress == 0
        assert state.error == "boom"

    def test_error_only_kept_when_failed(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        state = store.update("doc-1", status=ProcessingStatus.PROCESSING, error="ignored")
        assert state.error is None

    def test_non_terminal_update_after_terminal_ignored(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        done = store.update(
            "doc-1",
            stage=ProcessingStage.COMPLETE,
            progress=100,
            status=ProcessingStatus.COMPLETED,
        )
        after = store.update("doc-1", stage=ProcessingStage.EMBEDDING, progress=30)
        assert after == done
        assert store.get("doc-1").status == ProcessingStatus.COMPLETED

    def test_failed_after_completed_applies(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=100, status=ProcessingStatus.COMPLETED)
        state = store.update(
            "doc-1", stage=ProcessingStage.ERROR, status=ProcessingStatus.FAILED, error="late"
        )
        assert state.status == ProcessingStatus.FAILED


# ======================================================================
# Eviction
# ======================================================================


class TestEviction:
    def test_terminal_entry_readable_within_retention(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=100, status=ProcessingStatus.COMPLETED)
        clock.advance(299)
        assert store.get("doc-1") is not None

    def test_terminal_entry_gone_after_retention(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=100, status=ProcessingStatus.COMPLETED)
        clock.advance(300)
        assert store.get("doc-1") is None
        assert store.update("doc-1", progress=100, status=ProcessingStatus.COMPLETED) is None

    def test_repeated_terminal_update_restarts_countdown(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", status=ProcessingStatus.FAILED, error="first")
        clock.advance(200)
        store.update("doc-1", status=ProcessingStatus.FAILED, error="second")
        clock.advance(200)
        state = store.get("doc-1")
        assert state is not None
        assert state.error == "second"
        clock.advance(101)
        assert store.get("doc-1") is None

    def test_orphaned_entry_expires(self, store: ProgressStore, clock: FakeClock) -> None:
        store.initialize("doc-1", "a.md")
        store.update("doc-1", progress=30, status=ProcessingStatus.PROCESSING)
        clock.advance(1799)
        assert store.exists("doc-1")
        clock.advance(1)
        assert not store.exists("doc-1")

    def test_evict_expired_removes_physically(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("old", "a.md")
        store.update("old", status=ProcessingStatus.COMPLETED)
        store.initialize("new", "b.md")
        clock.advance(301)

        assert store.evict_expired() == 1
        assert [s.document_id for s in store.all()] == ["new"]
        assert store.evict_expired() == 0

    def test_orphan_deadline_not_extended_by_progress(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("doc-1", "a.md")
        clock.advance(1000)
        store.update("doc-1", progress=50, status=ProcessingStatus.PROCESSING)
        clock.advance(800)
        assert store.update("doc-1", progress=60) is None

    def test_remove(self, store: ProgressStore) -> None:
        store.initialize("doc-1", "a.md")
        assert store.remove("doc-1") is True
        assert store.remove("doc-1") is False
        assert store.get("doc-1") is None

    def test_size_and_clear(self, store: ProgressStore) -> None:
        store.initialize("a", "a.md")
        store.initialize("b", "b.md")
        assert store.size() == 2
        store.clear()
        assert store.size() == 0

    def test_size_excludes_expired_entries(
        self, store: ProgressStore, clock: FakeClock
    ) -> None:
        store.initialize("a", "a.md")
        store.update("a", status=ProcessingStatus.COMPLETED)
        store.initialize("b", "b.md")
        clock.advance(300)
        assert store.size() == 1


# ======================================================================
# Bounds
# ======================================================================


class TestBounds:
    def test_full_store_drops_least_recently_used(self, clock: FakeClock) -> None:
        store = ProgressStore(max_entries=2, clock=clock)
        store.initialize("a", "a.md")
        store.initialize("b", "b.md")
        store.get("a")

        store.initialize("c", "c.md")

        assert store.exists("a")
        assert not store.exists("b")
        assert store.exists("c")
        assert store.size() == 2

    @pytest.mark.parametrize(
        ("retention", "orphan_ttl"),
        [(0.0, 1800.0), (300.0, 0.0), (-1.0, 1800.0)],
    )
    def test_non_positive_durations_rejected(
        self, retention: float, orphan_ttl: float
    ) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            ProgressStore(retention=retention, orphan_ttl=orphan_ttl)


# ======================================================================
# Background sweep
# ======================================================================


class TestSweep:
    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        store = ProgressStore(sweep_interval=0.01)
        store.start()
        assert store.running
        await store.stop()
        assert not store.running

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        await ProgressStore().stop()

    @pytest.mark.asyncio
    async def test_sweep_purges_expired_entries(self) -> None:
        clock = FakeClock()
        store = ProgressStore(retention=1.0, sweep_interval=0.01, clock=clock)
        store.initialize("doc-1", "a.md")
        store.update("doc-1", status=ProcessingStatus.COMPLETED)
        clock.advance(5)

        store.start()
        try:
            for _ in range(50):
                await asyncio.sleep(0.01)
                if len(store._cache) == 0:
                    break
        finally:
            await store.stop()

        assert len(store._cache) == 0
