import asyncio
import json
from typing import Any, AsyncIterator, Iterable

from starlette.responses import StreamingResponse

from ..events import Broadcaster

KEEPALIVE_SECONDS = 30

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _frame(entry: Any) -> str:
    return f"data: {json.dumps(entry, ensure_ascii=False)}\n\n"


async def event_stream(
    broadcaster: Broadcaster,
    backlog: Iterable[Any] = (),
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield *backlog* first, then every newly published entry as SSE frames."""
    queue = broadcaster.subscribe()
    try:
        for entry in backlog:
            yield _frame(entry)
        while True:
            try:
                entry = await asyncio.wait_for(queue.get(), timeout=keepalive)
                yield _frame(entry)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
    finally:
        broadcaster.unsubscribe(queue)


def sse_response(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
