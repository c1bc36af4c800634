import time
from datetime import datetime
from typing import List
from redis.exceptions import RedisError

from notify_relay.core.exceptions import DequeueError, EnqueueError, QueueConnectionError
from notify_relay.core.logging import get_logger
from notify_relay.core.redis_pool import RedisConnectionPool

logger = get_logger(__name__)


# Take up to ARGV[2] members due at or before ARGV[1] and remove them atomically.
POP_JOBS_SCRIPT = """
local name = KEYS[1]
local timestamp = ARGV[1]
local limit = ARGV[2]
local results = redis.call('zrangebyscore', name, '-inf', timestamp, 'LIMIT', 0, limit)
if #results > 0 then
  redis.call('zrem', name, unpack(results))
end
return results
"""


def _score(when: datetime) -> int:
    return int(when.timestamp() * 1_000_000_000)


class RedisQueue:
    """
    Scheduled job queue stored in a Redis sorted set.

    Members are queue records and scores are due times in nanoseconds, so
    records pop in due order and an identical record is stored only once.
    """

    def __init__(self, pool: RedisConnectionPool, name: str):
        self.pool = pool
        self.name = name

    async def push(self, record: str) -> bool:
        """Queue a record for immediate delivery."""
        return await self._add(record, time.time_ns())

    async def schedule(self, record: str, when: datetime) -> bool:
        """Queue a record that becomes due at ``when``."""
        return await self._add(record, _score(when))

    async def _add(self, record: str, score: int) -> bool:
        try:
            async with self.pool.connection() as conn:
                added = await conn.execute("ZADD", self.name, score, record)
        except (RedisError, OSError, QueueConnectionError) as e:
            logger.error("Cannot put data to queue", queue=self.name, error=str(e))
            raise EnqueueError(f"Cannot put data to queue {self.name}: {e}") from e

        if not added:
            logger.warning("Record already queued", queue=self.name)
        return bool(added)

    async def pop(self) -> str:
        """Remove and return the earliest due record, or "" when none is due."""
        records = await self.pop_many(1)
        return records[0] if records else ""

    async def pop_many(self, limit: int) -> List[str]:
        try:
            async with self.pool.connection() as conn:
                records = await conn.execute(
                    "EVAL", POP_JOBS_SCRIPT, 1, self.name, time.time_ns(), limit
                )
        except (RedisError, OSError, QueueConnectionError) as e:
            logger.error("Cannot pop data from queue", queue=self.name, error=str(e))
            raise DequeueError(f"Cannot pop data from queue {self.name}: {e}") from e
        return list(records or [])

    async def pending(self) -> int:
        """Number of records waiting in the queue, due or not."""
        try:
            async with self.pool.connection() as conn:
                return int(await conn.execute("ZCARD", self.name))
        except (RedisError, OSError) as e:
            raise QueueConnectionError(f"Cannot read length of queue {self.name}: {e}") from e

    async def flush(self):
        """Delete every record in the queue."""
        async with self.pool.connection() as conn:
            await conn.execute("DEL", self.name)
        logger.info("Queue flushed", queue=self.name)
