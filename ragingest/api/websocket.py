"""WebSocket endpoint for real-time document progress updates.

Same event feed as the SSE endpoint, delivered as JSON messages:

    {"event": "progress", "document_id": "...", "stage": "embedding",
     "progress": 44, "status": "processing", "error": null, "timestamp": "..."}

# ─── HOW WEBSOCKET PROGRESS WORKS (Junior Developer Guide) ────────────
#
#   Client                               Backend (this file)
#   ──────                               ──────────────────
#   ws = new WebSocket(url)   ──────→   stream.exists()? else close 1008
#                                        websocket.accept()
#                             ←──────   "connected" event (current snapshot)
#                                        ...subscription polls ProgressStore...
#                             ←──────   "progress" event (only on change)
#                             ←──────   "progress" event (terminal status)
#                                        websocket.close()
#
#   If the client goes away first:
#   ws.close()                ──────→   _watch_disconnect() returns
#                                        _forward() is cancelled
#                                        subscription.aclose() stops polling
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect, status

from ragingest.services.progress_stream import ProgressStreamServer
from ragingest.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_progress(websocket: WebSocket, document_id: str) -> None:
    """Stream progress events for *document_id* to the client.

    Lifecycle:
        1. Reject unknown documents with close code 1008.
        2. Accept, then forward every event from the subscription.
        3. A background receive loop notices client disconnects and
           cancels the forwarding task.
        4. Close the subscription in every case.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    document_id:
        The document to follow.
    """
    # Access the stream server from app.state (set during startup).
    stream: ProgressStreamServer = websocket.app.state.progress_stream

    if not stream.exists(document_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Document not found")
        return

    await websocket.accept()
    _logger.info("websocket_connected", document_id=document_id)

    subscription = stream.subscribe(document_id)

    async def _forward() -> None:
        async for event in subscription:
            await websocket.send_text(event.model_dump_json())

    async def _watch_disconnect() -> None:
        # Keep-alive pings are read and ignored until the client leaves.
        with contextlib.suppress(WebSocketDisconnect):
            while True:
                await websocket.receive_text()

    forward_task = asyncio.create_task(_forward())
    watch_task = asyncio.create_task(_watch_disconnect())
    try:
        done, _ = await asyncio.wait(
            {forward_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if forward_task in done:
            exc = forward_task.exception()
            if exc is None:
                await websocket.close()
            else:
                _logger.warning("websocket_send_failed", document_id=document_id, error=str(exc))
        else:
            _logger.info("websocket_disconnected", document_id=document_id)
    finally:
        for task in (forward_task, watch_task):
            task.cancel()
        await asyncio.gather(forward_task, watch_task, return_exceptions=True)
        await subscription.aclose()
        _logger.debug("websocket_subscription_closed", document_id=document_id)
