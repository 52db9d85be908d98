"""Background outbox for side effects that must not delay a transition.

Work is queued after the primary commit and delivered by a worker task the
outbox owns, so cancelling the caller does not cancel delivery. Delivery
failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class OutboxTask:
    kind: str
    rfi_id: str
    action: Callable[[], Awaitable[object]]


class Outbox:
    """FIFO of side-effect tasks drained by a single background worker."""

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue[OutboxTask]] = None
        self._worker: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failed = 0

    def _ensure_queue(self) -> asyncio.Queue[OutboxTask]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def enqueue(self, task: OutboxTask) -> None:
        """Queue ``task`` and make sure a worker is running."""
        self._ensure_queue().put_nowait(task)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def join(self) -> None:
        """Wait until every queued task has been delivered or dropped."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain outstanding work and stop the worker."""
        await self.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _run(self) -> None:
        queue = self._ensure_queue()
        while True:
            task = await queue.get()
            try:
                await self._deliver(task)
            finally:
                queue.task_done()

    async def _deliver(self, task: OutboxTask) -> None:
        try:
            await task.action()
        except Exception as e:
            self.failed += 1
            logger.warning(f"Outbox task {task.kind} failed for rfi_id={task.rfi_id}: {e}")
            return
        self.delivered += 1
