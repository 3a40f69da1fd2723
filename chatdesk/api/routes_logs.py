import logging
from datetime import datetime

from fastapi import APIRouter

from ..events import Broadcaster
from .sse import event_stream, sse_response

router = APIRouter(prefix="/api/logs", tags=["logs"])


class BufferedLogHandler(logging.Handler):
    """Keeps the most recent log records and streams new ones to subscribers."""

    def __init__(self, maxlen: int = 500):
        super().__init__()
        self.events = Broadcaster(maxlen=maxlen)

    def emit(self, record: logging.LogRecord):
        try:
            self.events.publish({
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "name": record.name,
                "message": self.format(record),
            })
        except Exception:
            self.handleError(record)

    def get_buffer(self) -> list[dict]:
        return self.events.snapshot()

    def clear(self):
        self.events.clear()


log_handler = BufferedLogHandler()
log_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))


@router.get("")
async def get_logs():
    return {"logs": log_handler.get_buffer()}


@router.get("/stream")
async def stream_logs():
    return sse_response(event_stream(log_handler.events, log_handler.get_buffer()))


@router.delete("")
async def clear_logs():
    log_handler.clear()
    return {"status": "ok"}
