"""Unit tests for ProgressStreamServer."""

from __future__ import annotations

import asyncio

import pytest

from ragingest.models.progress import (
    ProcessingStage,
    ProcessingStatus,
    ProgressEventType,
)
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.services.progress_stream import ProgressStreamServer


class ScriptedSleep:
    """Sleep replacement that applies one scripted store mutation per poll."""

    def __init__(self, steps) -> None:
        self._steps = list(steps)
        self.calls = 0

    async def __call__(self, _: float) -> None:
        self.calls += 1
        if self._steps:
            self._steps.pop(0)()
        await asyncio.sleep(0)


async def _collect(stream: ProgressStreamServer, document_id: str) -> list:
    return [event async for event in stream.subscribe(document_id)]


# ======================================================================
# Feed contents
# ======================================================================


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_connected_event_first_with_current_state(
        self, progress_store: ProgressStore
    ) -> None:
        progress_store.initialize("doc-1", "a.md")
        progress_store.update("doc-1", progress=30, status=ProcessingStatus.PROCESSING)
        stream = ProgressStreamServer(progress_store)

        subscription = stream.subscribe("doc-1")
        first = await subscription.__anext__()
        await subscription.aclose()

        assert first.event == ProgressEventType.CONNECTED
        assert first.status == ProcessingStatus.PROCESSING
        assert first.progress == 30

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_terminal_progress_event(
        self, progress_store: ProgressStore
    ) -> None:
        progress_store.initialize("doc-1", "a.md")
        progress_store.update(
            "doc-1",
            stage=ProcessingStage.COMPLETE,
            progress=100,
            status=ProcessingStatus.COMPLETED,
        )
        stream = ProgressStreamServer(progress_store)

        events = await _collect(stream, "doc-1")

        assert [e.event for e in events] == [
            ProgressEventType.CONNECTED,
            ProgressEventType.PROGRESS,
        ]
        assert events[1].status == ProcessingStatus.COMPLETED
        assert events[1].stage == ProcessingStage.COMPLETE
        assert events[1].progress == 100
        assert stream.active_subscriptions == 0

    @pytest.mark.asyncio
    async def test_unknown_document_yields_only_connected(
        self, progress_store: ProgressStore
    ) -> None:
        stream = ProgressStreamServer(progress_store)
        events = await _collect(stream, "missing")
        assert len(events) == 1
        assert events[0].event == ProgressEventType.CONNECTED
        assert events[0].stage is None

    @pytest.mark.asyncio
    async def test_only_changes_are_emitted_and_feed_ends_on_terminal(
        self, progress_store: ProgressStore
    ) -> None:
        progress_store.initialize("doc-1", "a.md")

        def _update(**kwargs):
            return lambda: progress_store.update("doc-1", **kwargs)

        sleep = ScriptedSleep(
            [
                _update(
                    stage=ProcessingStage.PARSING,
                    progress=5,
                    status=ProcessingStatus.PROCESSING,
                ),
                lambda: None,
                _update(progress=5),
                _update(stage=ProcessingStage.EMBEDDING, progress=20),
                _update(
                    stage=ProcessingStage.COMPLETE,
                    progress=100,
                    status=ProcessingStatus.COMPLETED,
                ),
            ]
        )
        stream = ProgressStreamServer(progress_store, sleep=sleep)

        events = await _collect(stream, "doc-1")

        assert [e.event for e in events] == [ProgressEventType.CONNECTED] + [
            ProgressEventType.PROGRESS
        ] * 3
        assert [e.progress for e in events] == [0, 5, 20, 100]
        assert events[-1].status == ProcessingStatus.COMPLETED
        assert sleep.calls == 5

    @pytest.mark.asyncio
    async def test_failure_event_carries_error(self, progress_store: ProgressStore) -> None:
        progress_store.initialize("doc-1", "a.md")
        sleep = ScriptedSleep(
            [
                lambda: progress_store.update(
                    "doc-1",
                    stage=ProcessingStage.ERROR,
                    status=ProcessingStatus.FAILED,
                    error="embedding failed",
                )
            ]
        )
        stream = ProgressStreamServer(progress_store, sleep=sleep)

        events = await _collect(stream, "doc-1")
        assert events[-1].stage == ProcessingStage.ERROR
        assert events[-1].error == "embedding failed"

    @pytest.mark.asyncio
    async def test_feed_ends_when_entry_disappears(self, progress_store: ProgressStore) -> None:
        progress_store.initialize("doc-1", "a.md")
        sleep = ScriptedSleep([lambda: progress_store.remove("doc-1")])
        stream = ProgressStreamServer(progress_store, sleep=sleep)

        events = await _collect(stream, "doc-1")
        assert len(events) == 1
        assert stream.active_subscriptions == 0


# ======================================================================
# Subscriber lifecycle
# ======================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_closing_subscription_stops_polling(
        self, progress_store: ProgressStore
    ) -> None:
        progress_store.initialize("doc-1", "a.md")
        sleep = ScriptedSleep([])
        stream = ProgressStreamServer(progress_store, sleep=sleep)

        subscription = stream.subscribe("doc-1")
        first = await subscription.__anext__()
        assert first.event == ProgressEventType.CONNECTED
        assert stream.active_subscriptions == 1

        await subscription.aclose()
        polls = sleep.calls
        for _ in range(5):
            await asyncio.sleep(0)
        assert sleep.calls == polls
        assert stream.active_subscriptions == 0

    @pytest.mark.asyncio
    async def test_cancelled_consumer_releases_subscription(
        self, progress_store: ProgressStore
    ) -> None:
        progress_store.initialize("doc-1", "a.md")
        stream = ProgressStreamServer(progress_store, poll_interval=0.01)

        async def _consume() -> None:
            async for _ in stream.subscribe("doc-1"):
                pass

        task = asyncio.create_task(_consume())
        await asyncio.sleep(0.05)
        assert stream.active_subscriptions == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert stream.active_subscriptions == 0

    def test_exists_delegates_to_store(self, progress_store: ProgressStore) -> None:
        progress_store.initialize("doc-1", "a.md")
        stream = ProgressStreamServer(progress_store)
        assert stream.exists("doc-1")
        assert not stream.exists("doc-2")
