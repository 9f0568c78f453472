"""Progress stream server: turns progress-store snapshots into an event feed.

Transport-agnostic.  :meth:`ProgressStreamServer.subscribe` returns an
async iterator of :class:`ProgressEvent` objects; the SSE endpoint and the
WebSocket endpoint both consume it and only differ in framing.

The feed polls the store every ``poll_interval`` seconds and yields an
event only when ``(stage, progress, status)`` changed since the last
event.  It ends after the first terminal event, or silently once the
entry is gone from the store.  A subscriber that arrives after the run
finished gets the ``connected`` event followed by one terminal event.  Closing or cancelling the iterator stops
the polling loop at its next suspension point.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from ragingest.models.progress import ProgressEvent
from ragingest.pipeline.progress_store import ProgressStore
from ragingest.utils.logging import get_logger


class ProgressStreamServer:
    """Per-subscriber progress feeds backed by a :class:`ProgressStore`.

    Parameters
    ----------
    progress_store:
        Source of progress snapshots.
    poll_interval:
        Seconds between store reads (default 0.25).
    sleep:
        Sleep coroutine used between polls; tests inject their own.
    """

    def __init__(
        self,
        progress_store: ProgressStore,
        poll_interval: float = 0.25,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = progress_store
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._active = 0
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def active_subscriptions(self) -> int:
        return self._active

    def exists(self, document_id: str) -> bool:
        """Return ``True`` if *document_id* can be subscribed to right now."""
        return self._store.exists(document_id)

    async def subscribe(self, document_id: str) -> AsyncIterator[ProgressEvent]:
        """Yield a ``connected`` event, then one event per observed change.

        Parameters
        ----------
        document_id:
            The document to follow.  Callers should check :meth:`exists`
            first; an unknown id yields only the ``connected`` event.
        """
        self._active += 1
        polls = 0
        self._logger.debug("progress_subscription_opened", document_id=document_id)
        try:
            state = self._store.get(document_id)
            yield ProgressEvent.connected(document_id, state)
            if state is None:
                return
            if state.is_terminal:
                # Late subscribers still get one terminal progress frame.
                yield ProgressEvent.from_state(state)
                return

            last = state.fingerprint()
            while True:
                await self._sleep(self._poll_interval)
                polls += 1
                state = self._store.get(document_id)
                if state is None:
                    self._logger.debug("progress_subscription_entry_gone", document_id=document_id)
                    return
                if state.fingerprint() != last:
                    last = state.fingerprint()
                    yield ProgressEvent.from_state(state)
                if state.is_terminal:
                    return
        finally:
            self._active -= 1
            self._logger.debug(
                "progress_subscription_closed",
                document_id=document_id,
                polls=polls,
            )
