import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .gateway import GatewayError

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception], None]


class BackgroundCalls:
    """Fire-and-forget gateway calls.

    Tasks are kept referenced until they finish; failures are logged (and
    optionally reported through *on_error*) but never raised to the caller.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(
        self,
        coro: Awaitable[None],
        description: str,
        on_error: Optional[ErrorCallback] = None,
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self.run(coro, description, on_error)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(
        self,
        coro: Awaitable[None],
        description: str,
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Failed to %s: %s", description, e,
                exc_info=not isinstance(e, GatewayError),
            )
            if on_error is not None:
                on_error(e)
            return False
        return True

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight call, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
