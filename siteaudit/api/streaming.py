"""Server-Sent Events plumbing for long-running operations.

A run coroutine receives an ``emit(payload)`` callable and is executed as a
background task; every emitted payload becomes one SSE ``data:`` line.  The
stream always ends with an ``error`` event (if the run raised) followed by a
``done`` event::

    data: {"event": "progress", "completed": 3, "total": 10}

    data: {"event": "error", "error": "NoSitemapFoundError", "detail": "..."}

    data: {"event": "done"}
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

Emit = Callable[[dict[str, Any]], None]
Run = Callable[[Emit], Awaitable[Optional[dict[str, Any]]]]


def _sse(payload: dict[str, Any]) -> str:
    """Format a payload dict as a single SSE ``data:`` line."""
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def _event_stream(run: Run) -> AsyncIterator[str]:
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def emit(payload: dict[str, Any]) -> None:
        queue.put_nowait(_sse(payload))

    async def _runner() -> None:
        done: dict[str, Any] = {"event": "done"}
        try:
            extra = await run(emit)
            if extra:
                done.update(extra)
        except Exception as exc:  # noqa: BLE001
            logger.warning("[api] stream run failed: %s", exc)
            emit({"event": "error", "error": type(exc).__name__, "detail": str(exc)})
        finally:
            emit(done)
            queue.put_nowait(None)  # sentinel

    task = asyncio.create_task(_runner())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield item
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


def sse_response(run: Run) -> StreamingResponse:
    return StreamingResponse(
        _event_stream(run),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",   # disable nginx proxy buffering
        },
    )
