"""FIFO of operations against the single browser page."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from errors import ResourceError

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


class OperationQueue:
    """
    Runs queued operations one at a time, in submission order.

    A single drain task is started by the first enqueue and keeps running
    until the queue is empty, so anything enqueued while it drains is picked
    up by the same pass.
    """

    def __init__(self) -> None:
        self._pending: deque[tuple[Operation, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def closed(self) -> bool:
        return self._closed

    async def enqueue(self, operation: Operation) -> Any:
        """Queue ``operation`` and wait for its result (or exception)."""
        if self._closed:
            raise ResourceError("Operation queue is closed")

        future = asyncio.get_running_loop().create_future()
        self._pending.append((operation, future))
        if not self.processing:
            self._worker = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while self._pending:
            operation, future = self._pending.popleft()
            if future.cancelled():
                logger.debug("Skipping cancelled operation")
                continue
            try:
                result = await operation()
            except Exception as e:
                if not future.cancelled():
                    future.set_exception(e)
            else:
                if not future.cancelled():
                    future.set_result(result)

    def close(self) -> None:
        """Reject new operations. Already queued ones still run."""
        self._closed = True

    async def join(self) -> None:
        """Wait until the current drain pass has finished."""
        if self._worker is not None:
            await asyncio.shield(self._worker)
