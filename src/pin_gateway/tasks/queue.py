"""In-process background task queue drained by a fixed worker pool."""

from __future__ import annotations

import asyncio
import logging

from pin_gateway.interfaces.tasks import TaskFactory

log = logging.getLogger(__name__)


class BackgroundTaskQueue:
    """Runs submitted coroutines outside the request that scheduled them.

    Work is held in memory only; anything still queued when the process
    exits without `stop(drain=True)` is lost. A failing unit is logged and
    counted, the worker moves on to the next one.
    """

    def __init__(self, workers: int = 4, max_size: int = 1000) -> None:
        self._num_workers = max(1, workers)
        self._queue: asyncio.Queue[tuple[str, TaskFactory]] = asyncio.Queue(maxsize=max_size)
        self._workers: list[asyncio.Task] = []
        self._stopped = False
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stopped

    def start(self) -> None:
        if self._workers:
            return
        self._stopped = False
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"task-worker-{i}")
            for i in range(self._num_workers)
        ]
        log.debug("Started %d background workers", self._num_workers)

    def submit(self, name: str, factory: TaskFactory) -> bool:
        if self._stopped:
            log.warning("Task queue stopped, dropping %s", name)
            return False
        try:
            self._queue.put_nowait((name, factory))
        except asyncio.QueueFull:
            log.warning("Task queue full (%d pending), dropping %s", self.pending, name)
            return False
        log.debug("Queued %s", name)
        return True

    async def join(self) -> None:
        """Wait until everything submitted so far has run."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Refuse new work, optionally finish what is queued, stop workers."""
        self._stopped = True
        if drain and self._workers:
            await self._queue.join()
        elif self.pending:
            log.warning("Discarding %d queued background task(s)", self.pending)

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        log.info(
            "Background tasks stopped: %d completed, %d failed",
            self.completed, self.failed,
        )

    async def _worker(self, index: int) -> None:
        while True:
            name, factory = await self._queue.get()
            try:
                await factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.failed += 1
                log.error("Background task %s failed: %s", name, exc, exc_info=True)
            else:
                self.completed += 1
                log.debug("Background task %s done (worker %d)", name, index)
            finally:
                self._queue.task_done()
