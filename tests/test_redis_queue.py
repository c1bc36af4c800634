"""
Unit tests for the sorted-set backed notification queue.
"""
from datetime import datetime, timedelta, timezone
import pytest

from notify_relay.core.exceptions import DequeueError, EnqueueError, QueueConnectionError


class TestRedisQueue:
    """Test cases for RedisQueue."""

    @pytest.mark.asyncio
    async def test_push_then_pop(self, queue, redis_server):
        assert await queue.push("tok 5551234 Hello") is True

        assert await queue.pop() == "tok 5551234 Hello"
        assert redis_server.members("notifications") == []

    @pytest.mark.asyncio
    async def test_pop_empty_queue_returns_empty_string(self, queue):
        assert await queue.pop() == ""

    @pytest.mark.asyncio
    async def test_records_pop_in_push_order(self, queue):
        for record in ("a 1 first", "b 1 second", "c 1 third"):
            await queue.push(record)

        assert [await queue.pop() for _ in range(3)] == ["a 1 first", "b 1 second", "c 1 third"]

    @pytest.mark.asyncio
    async def test_identical_record_stored_once(self, queue):
        assert await queue.push("tok 5551234 Hello") is True
        assert await queue.push("tok 5551234 Hello") is False
        assert await queue.pending() == 1

    @pytest.mark.asyncio
    async def test_scheduled_record_not_popped_before_due(self, queue):
        later = datetime.now(timezone.utc) + timedelta(hours=1)
        await queue.schedule("tok 5551234 Later", later)

        assert await queue.pop() == ""
        assert await queue.pending() == 1

    @pytest.mark.asyncio
    async def test_pop_many_respects_limit(self, queue):
        for i in range(5):
            await queue.push(f"t{i} 1 body")

        assert len(await queue.pop_many(3)) == 3
        assert await queue.pending() == 2

    @pytest.mark.asyncio
    async def test_push_failure_raises_enqueue_error(self, queue, redis_server):
        redis_server.failing_commands.add("ZADD")

        with pytest.raises(EnqueueError):
            await queue.push("tok 5551234 Hello")
        assert queue.pool.active == 0

    @pytest.mark.asyncio
    async def test_push_without_connection_raises_enqueue_error(self, queue, redis_server):
        redis_server.down = True

        with pytest.raises(EnqueueError):
            await queue.push("tok 5551234 Hello")

    @pytest.mark.asyncio
    async def test_pop_failure_raises_dequeue_error(self, queue, redis_server):
        redis_server.failing_commands.add("EVAL")

        with pytest.raises(DequeueError):
            await queue.pop()
        assert queue.pool.active == 0
        assert queue.pool.idle == 0

    @pytest.mark.asyncio
    async def test_pending_failure_raises_connection_error(self, queue, redis_server):
        redis_server.down = True

        with pytest.raises(QueueConnectionError):
            await queue.pending()

    @pytest.mark.asyncio
    async def test_flush_empties_queue(self, queue):
        await queue.push("tok 5551234 Hello")

        await queue.flush()

        assert await queue.pending() == 0
