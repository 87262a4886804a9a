"""Per-user sharded event queues.

Every event of one sender lands on the same worker, so the active
conversation check and the conversation creation for that sender never
interleave. Different senders are processed in parallel across workers.
"""

from __future__ import annotations

import asyncio
import logging
import zlib
from typing import Awaitable, Callable, Optional

from core.models import InboundEvent

LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[InboundEvent], Awaitable[object]]


def shard_for(sender_id: str, workers: int) -> int:
    """Stable shard index for a sender (independent of PYTHONHASHSEED)."""

    return zlib.crc32(sender_id.encode("utf-8")) % workers


class UserShardedRouter:
    """Bounded queues feeding one serial consumer per shard."""

    def __init__(self, handler: EventHandler, workers: int = 4, queue_size: int = 100) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._handler = handler
        self._workers = workers
        self._queue_size = queue_size
        self._queues: list[asyncio.Queue] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Create the queues and worker tasks on the running loop."""

        if self._tasks:
            return
        self._queues = [asyncio.Queue(maxsize=self._queue_size) for _ in range(self._workers)]
        self._tasks = [
            asyncio.create_task(self._consume(index, queue), name=f"event-worker-{index}")
            for index, queue in enumerate(self._queues)
        ]
        LOGGER.info("Started %s event workers", self._workers)

    async def submit(self, event: InboundEvent) -> None:
        """Queue an event, waiting while its shard is full."""

        if not self._tasks:
            raise RuntimeError("Router is not started")
        queue = self._queues[shard_for(event.sender_id, self._workers)]
        await queue.put(event)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""

        for queue in self._queues:
            await queue.join()

    async def stop(self, drain: bool = True) -> None:
        if drain:
            await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queues = []

    async def _consume(self, index: int, queue: asyncio.Queue) -> None:
        while True:
            event: Optional[InboundEvent] = await queue.get()
            try:
                await self._handler(event)
            except Exception:
                LOGGER.exception("Event worker %s failed on event from %s", index, event.sender_id)
            finally:
                queue.task_done()
