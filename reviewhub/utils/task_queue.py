import asyncio
from typing import Awaitable, List, Optional

from .logging import get_logger

logger = get_logger()


class BackgroundTaskQueue:
    """Bounded queue of fire-and-forget coroutines.

    Every job runs inside the worker's own error boundary, so a failing
    notification never reaches the operation that submitted it.
    """

    def __init__(self, maxsize: int = 1000, workers: int = 2) -> None:
        self._queue: "asyncio.Queue[Awaitable]" = asyncio.Queue(maxsize=maxsize)
        self._worker_count = workers
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        for index in range(self._worker_count):
            self._workers.append(asyncio.create_task(self._worker(index)))
        logger.info(f"Background queue started with {self._worker_count} workers")

    def submit(self, job: Awaitable, name: Optional[str] = None) -> bool:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.error(f"Background queue full, dropping job {name or job!r}")
            close = getattr(job, "close", None)
            if close is not None:
                close()
            return False
        return True

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Background job failed in worker {index}")
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        if self._workers:
            await self.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Background queue stopped")
