"""Server-Sent Events transport for document progress.

Frames each :class:`ProgressEvent` from :class:`ProgressStreamServer` as::

    event: progress
    data: {"event": "progress", "document_id": "...", "stage": "embedding", ...}

and sends it over a ``text/event-stream`` response.  When the client goes
away Starlette stops iterating the body, which closes the subscription
generator and ends its polling.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi.responses import StreamingResponse

from ragingest.models.progress import ProgressEvent
from ragingest.services.progress_stream import ProgressStreamServer

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering (nginx) so frames arrive as they are sent.
    "X-Accel-Buffering": "no",
}


def format_sse(event: ProgressEvent) -> str:
    """Serialize *event* into one SSE frame."""
    return f"event: {event.event.value}\ndata: {event.model_dump_json()}\n\n"


async def _frames(stream: ProgressStreamServer, document_id: str) -> AsyncIterator[str]:
    subscription = stream.subscribe(document_id)
    try:
        async for event in subscription:
            yield format_sse(event)
    finally:
        await subscription.aclose()


def progress_event_response(stream: ProgressStreamServer, document_id: str) -> StreamingResponse:
    """Build the streaming response for one subscriber."""
    return StreamingResponse(
        _frames(stream, document_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
