import asyncio
from typing import List, Optional

from notify_relay.core.exceptions import DispatchRejectedError, EnqueueError, QueueConnectionError
from notify_relay.core.logging import get_logger
from notify_relay.core.redis_queue import RedisQueue

logger = get_logger(__name__)


class EnqueueDispatcher:
    """
    Pushes intake records onto the Redis queue in the background.

    Records wait in a bounded in-process buffer drained by a fixed number of
    tasks, so an HTTP request never waits on the Redis round-trip. When the
    buffer is full the saturation policy decides: ``drop`` discards the
    record, ``reject`` raises DispatchRejectedError, ``block`` waits for room.
    A failed push is logged and the record is lost.
    """

    def __init__(
        self,
        queue: RedisQueue,
        workers: int = 4,
        max_pending: int = 1000,
        saturation_policy: str = "drop",
    ):
        if saturation_policy not in ("drop", "reject", "block"):
            raise ValueError(f"Unknown saturation policy: {saturation_policy}")
        self.queue = queue
        self.workers = workers
        self.saturation_policy = saturation_policy
        self._buffer: "asyncio.Queue[str]" = asyncio.Queue(maxsize=max_pending)
        self._tasks: List[asyncio.Task] = []
        self.pushed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._buffer.qsize()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._drain(i), name=f"enqueue-dispatcher-{i}")
            for i in range(self.workers)
        ]
        logger.info("Enqueue dispatcher started",
                    workers=self.workers,
                    max_pending=self._buffer.maxsize,
                    saturation_policy=self.saturation_policy)

    async def stop(self, drain_timeout: Optional[float] = 5.0):
        """Push what is still buffered, then stop the background tasks."""
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self._buffer.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Enqueue dispatcher stopped with records still buffered",
                           pending=self.pending)
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Enqueue dispatcher stopped",
                    pushed=self.pushed, failed=self.failed, dropped=self.dropped)

    async def submit(self, record: str) -> bool:
        """Hand a record over for pushing; False when it was dropped."""
        if self.saturation_policy == "block":
            await self._buffer.put(record)
            return True
        try:
            self._buffer.put_nowait(record)
            return True
        except asyncio.QueueFull:
            if self.saturation_policy == "reject":
                raise DispatchRejectedError(
                    "Enqueue dispatcher is saturated",
                    {"pending": self.pending},
                )
            self.dropped += 1
            logger.warning("Enqueue dispatcher saturated, record dropped", pending=self.pending)
            return False

    async def _drain(self, worker_id: int):
        while True:
            record = await self._buffer.get()
            try:
                await self.queue.push(record)
                self.pushed += 1
                logger.debug("Data was added", queue=self.queue.name, worker=worker_id)
            except (EnqueueError, QueueConnectionError) as e:
                self.failed += 1
                logger.error("Record lost, enqueue failed", queue=self.queue.name, error=str(e))
            except Exception as e:
                self.failed += 1
                logger.error("Record lost, unexpected enqueue error",
                             queue=self.queue.name, worker=worker_id, error=str(e), exc_info=True)
            finally:
                self._buffer.task_done()
