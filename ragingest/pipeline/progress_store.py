"""In-memory progress store backed by ``cachetools.TLRUCache``.

Holds one :class:`ProgressState` per in-flight document.  The document
processor writes to it; the progress stream server and the status endpoint
read from it.

# ─── HOW PROGRESS DATA FLOWS (Junior Developer Guide) ─────────────────
#
#   DocumentService.accept_upload ──initialize()──→ ProgressStore
#   DocumentProcessor.process     ──update()──────→ ProgressStore
#   ProgressStreamServer          ←──get()───────── ProgressStore  (every poll)
#   GET /documents/{id}/status    ←──get()───────── ProgressStore  (once)
#
# Data flow for one upload:
#   1. The upload route calls initialize() → stage "upload", progress 0
#   2. The processor calls update() as it moves through parse, chunk,
#      embed and store (5 → 15 → 20..80 → 85 → 100)
#   3. Each SSE / WebSocket subscriber polls get() and only forwards a
#      frame when (stage, progress, status) changed
#   4. A terminal update starts the retention countdown; after that the
#      entry disappears and subscribers end their stream
#
# The store never pushes anything.  Snapshots are immutable pydantic
# models, so readers can hold one without locking.
# ──────────────────────────────────────────────────────────────────────

Expiry is computed per item by the cache's ``ttu`` (time-to-use) hook,
which runs every time an entry is assigned:

* Non-terminal entries expire ``orphan_ttl`` seconds after
  :meth:`ProgressStore.initialize`, so entries whose processor never
  reports back do not live forever.
* Every terminal update (``completed`` / ``failed``) re-assigns the entry,
  which restarts the countdown at ``now + retention``.

Expired entries are invisible to :meth:`get`, :meth:`exists` and
:meth:`update` as soon as their deadline passes.  One background sweep
task (:meth:`start` / :meth:`stop`) calls ``expire()`` periodically; there
is no timer per entry.  ``max_entries`` bounds memory: when full, the
least recently used entry is dropped.

All methods are synchronous and only ever called from the event loop
thread, so each call is atomic with respect to other coroutines.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import NamedTuple

import structlog
from cachetools import TLRUCache

from ragingest.models.progress import ProcessingStage, ProcessingStatus, ProgressState
from ragingest.utils.logging import get_logger


class _Entry(NamedTuple):
    """Cached value: the current immutable snapshot plus its creation time."""

    state: ProgressState
    created: float


class ProgressStore:
    """Process-scoped store of per-document progress snapshots.

    Parameters
    ----------
    retention:
        Seconds a terminal entry stays readable after its last terminal
        update (default 300).
    orphan_ttl:
        Seconds a non-terminal entry may live without reaching a terminal
        state (default 1800).
    sweep_interval:
        Seconds between background purges of expired entries.
    max_entries:
        Upper bound on tracked documents before the least recently used
        entry is evicted.
    clock:
        Monotonic time source in seconds; tests inject a fake clock.
    """

    def __init__(
        self,
        retention: float = 300.0,
        orphan_ttl: float = 1800.0,
        sweep_interval: float = 30.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention <= 0 or orphan_ttl <= 0:
            msg = "retention and orphan_ttl must be positive"
            raise ValueError(msg)
        self._retention = retention
        self._orphan_ttl = orphan_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._cache: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=max_entries, ttu=self._time_to_use, timer=clock
        )
        self._sweeper: asyncio.Task | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self, document_id: str, filename: str) -> ProgressState:
        """Create the entry for *document_id* at stage ``upload``.

        Raises
        ------
        ValueError
            If a live entry for *document_id* already exists.
        """
        if document_id in self._cache:
            msg = f"Progress entry for {document_id} already exists"
            raise ValueError(msg)

        state = ProgressState(
            document_id=document_id,
            filename=filename,
            stage=ProcessingStage.UPLOAD,
            progress=0,
            status=ProcessingStatus.PENDING,
        )
        self._cache[document_id] = _Entry(state=state, created=self._clock())
        self._logger.debug("progress_initialized", document_id=document_id, filename=filename)
        return state

    def update(
        self,
        document_id: str,
        *,
        stage: ProcessingStage | None = None,
        progress: int | None = None,
        status: ProcessingStatus | None = None,
        error: str | None = None,
    ) -> ProgressState | None:
        """Apply a partial update to *document_id*'s entry.

        Parameters
        ----------
        document_id:
            The document to update.
        stage, progress, status, error:
            Fields to change; ``None`` keeps the current value.  ``error``
            is only kept when the resulting status is ``failed``.

        Returns
        -------
        ProgressState | None
            The new snapshot, or ``None`` if the id is unknown or evicted
            (the update is dropped).  Once an entry is terminal, only
            further terminal updates are applied; anything else returns the
            stored snapshot unchanged.
        """
        entry = self._cache.get(document_id)
        if entry is None:
            self._logger.debug("progress_update_dropped", document_id=document_id)
            return None

        current = entry.state
        new_status = status if status is not None else current.status

        if current.is_terminal and not new_status.is_terminal:
            self._logger.debug(
                "progress_update_after_terminal",
                document_id=document_id,
                status=current.status.value,
            )
            return current

        new_progress = current.progress if progress is None else max(0, min(100, progress))
        if new_status != ProcessingStatus.FAILED and new_progress < current.progress:
            new_progress = current.progress

        changes: dict = {
            "status": new_status,
            "progress": new_progress,
            "error": (error if error is not None else current.error)
            if new_status == ProcessingStatus.FAILED
            else None,
            "updated_at": datetime.now(tz=timezone.utc),  # noqa: UP017
        }
        if stage is not None:
            changes["stage"] = stage

        state = current.model_copy(update=changes)
        # Re-assignment re-runs ttu, so a terminal update restarts retention.
        self._cache[document_id] = entry._replace(state=state)

        self._logger.debug(
            "progress_update",
            document_id=document_id,
            stage=state.stage.value,
            progress=state.progress,
            status=state.status.value,
        )
        return state

    def get(self, document_id: str) -> ProgressState | None:
        """Return the current snapshot, or ``None`` if unknown or evicted."""
        entry = self._cache.get(document_id)
        return entry.state if entry is not None else None

    def exists(self, document_id: str) -> bool:
        return document_id in self._cache

    def remove(self, document_id: str) -> bool:
        """Drop *document_id* immediately; return whether a live entry was removed."""
        live = document_id in self._cache
        self._cache.pop(document_id, None)
        return live

    def all(self) -> list[ProgressState]:
        """Return snapshots of every live entry."""
        states = []
        for document_id in list(self._cache):
            entry = self._cache.get(document_id)
            if entry is not None:
                states.append(entry.state)
        return states

    def size(self) -> int:
        self._cache.expire()
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    def evict_expired(self) -> int:
        """Physically remove every expired entry; return how many were removed."""
        expired = self._cache.expire()
        if expired:
            self._logger.info("progress_entries_evicted", count=len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep task on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="progress-store-sweep")
        self._logger.debug("progress_sweep_started", interval_s=self._sweep_interval)

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        self._logger.debug("progress_sweep_stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _time_to_use(self, _key: str, entry: _Entry, now: float) -> float:
        if entry.state.is_terminal:
            return now + self._retention
        return entry.created + self._orphan_ttl

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.evict_expired()
