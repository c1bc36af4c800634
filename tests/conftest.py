"""
Pytest configuration and fixtures for notify relay tests.
"""
import pytest
from unittest.mock import AsyncMock

from notify_relay.core.config import Settings
from notify_relay.core.redis_pool import RedisConnectionPool
from notify_relay.core.redis_queue import RedisQueue
from tests.fakes import FakeRedisServer, RecordingSink


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        REDIS_QUEUE="notifications",
        APP_HANDLER_URI="/send",
        SINK_BACKEND="log",
        POLL_INTERVAL_SECONDS=1.0,
        DEQUEUE_MAX_RETRIES=3,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def redis_server():
    """In-memory Redis shared by all pooled connections of a test."""
    return FakeRedisServer()


@pytest.fixture
def pool(redis_server):
    """Connection pool dialing the fake Redis server."""
    return RedisConnectionPool(
        max_active=2,
        max_idle=1,
        acquire_timeout=0.5,
        connection_factory=redis_server.connection,
    )


@pytest.fixture
def queue(pool):
    """Notification queue on the fake Redis server."""
    return RedisQueue(pool, "notifications")


@pytest.fixture
def sink():
    """Delivery sink that records what it receives."""
    return RecordingSink()


@pytest.fixture
def no_sleep():
    """Replacement for asyncio.sleep that returns at once."""
    return AsyncMock()
