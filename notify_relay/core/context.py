from typing import Optional

from notify_relay.core.config import Settings
from notify_relay.core.logging import get_logger
from notify_relay.core.redis_pool import RedisConnectionPool
from notify_relay.core.redis_queue import RedisQueue
from notify_relay.services.delivery_sink import DeliverySink, create_sink
from notify_relay.services.dispatcher import EnqueueDispatcher

logger = get_logger(__name__)


class RelayContext:
    """
    Long-lived resources of one relay process.

    Built once at startup and passed explicitly to the intake app or the
    delivery worker.
    """

    def __init__(
        self,
        settings: Settings,
        pool: RedisConnectionPool,
        queue: RedisQueue,
        sink: Optional[DeliverySink] = None,
        dispatcher: Optional[EnqueueDispatcher] = None,
    ):
        self.settings = settings
        self.pool = pool
        self.queue = queue
        self.sink = sink
        self.dispatcher = dispatcher

    @classmethod
    def for_intake(cls, settings: Settings) -> "RelayContext":
        pool = RedisConnectionPool.from_settings(settings)
        queue = RedisQueue(pool, settings.REDIS_QUEUE)
        dispatcher = EnqueueDispatcher(
            queue,
            workers=settings.DISPATCH_WORKERS,
            max_pending=settings.DISPATCH_QUEUE_SIZE,
            saturation_policy=settings.DISPATCH_SATURATION_POLICY,
        )
        return cls(settings, pool, queue, dispatcher=dispatcher)

    @classmethod
    def for_worker(cls, settings: Settings) -> "RelayContext":
        pool = RedisConnectionPool.from_settings(settings)
        queue = RedisQueue(pool, settings.REDIS_QUEUE)
        return cls(settings, pool, queue, sink=create_sink(settings))

    async def aclose(self):
        """Release every resource in reverse order of use."""
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        if self.sink is not None:
            await self.sink.close()
        await self.pool.close()
        logger.info("Relay context closed")
