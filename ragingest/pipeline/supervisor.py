"""Supervision of detached background processing tasks.

The upload endpoint answers ``202 Accepted`` before a document is
processed.  Each run is handed to :class:`TaskSupervisor`, which keeps a
strong reference to the task until it finishes (the event loop only holds
weak ones), logs any exception that escapes, and lets the application wait
for in-flight runs on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

from ragingest.utils.logging import get_logger


class TaskSupervisor:
    """Owns background tasks spawned on behalf of request handlers."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        """Schedule *coro* on the running loop and track it until done."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        self._logger.debug("task_spawned", task=task.get_name(), active=len(self._tasks))
        return task

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for tracked tasks; cancel whatever is still running after *timeout*.

        Parameters
        ----------
        timeout:
            Seconds to wait before cancelling.  ``None`` waits indefinitely.
        """
        if not self._tasks:
            return

        pending = set(self._tasks)
        self._logger.info("supervisor_draining", tasks=len(pending), timeout_s=timeout)
        _, still_running = await asyncio.wait(pending, timeout=timeout)

        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            self._logger.warning("supervisor_cancelled_tasks", count=len(still_running))

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "background_task_crashed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )
