import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
from redis.asyncio.connection import Connection
from redis.exceptions import AuthenticationError, RedisError

from notify_relay.core.config import Settings
from notify_relay.core.exceptions import AuthError, PoolExhaustedError, QueueConnectionError
from notify_relay.core.logging import get_logger

logger = get_logger(__name__)


class QueueConnection:
    """
    A single Redis transport connection leased from the pool.
    """

    def __init__(self, connection: Connection):
        self._connection = connection

    async def connect(self):
        await self._connection.connect()

    async def execute(self, *args: Any) -> Any:
        """Send one command and return its reply; error replies are raised."""
        await self._connection.send_command(*args)
        return await self._connection.read_response()

    async def ping(self):
        return await self.execute("PING")

    async def close(self):
        await self._connection.disconnect()


class RedisConnectionPool:
    """
    Bounded pool of authenticated Redis connections.

    At most ``max_active`` connections are leased at once and at most
    ``max_idle`` are kept open between leases. Idle connections are checked
    with PING before they are handed out again.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        max_active: int = 10,
        max_idle: int = 3,
        wait: bool = True,
        acquire_timeout: Optional[float] = None,
        socket_timeout: Optional[float] = None,
        connection_factory: Optional[Callable[[], QueueConnection]] = None,
    ):
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        if max_idle < 0:
            raise ValueError("max_idle must not be negative")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.max_active = max_active
        self.max_idle = max_idle
        self.wait = wait
        self.acquire_timeout = acquire_timeout
        self.socket_timeout = socket_timeout
        self._connection_factory = connection_factory or self._default_factory

        self._slots = asyncio.Semaphore(max_active)
        self._idle: List[QueueConnection] = []
        self._active = 0
        self._dials = 0
        self._dial_failures = 0
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisConnectionPool":
        return cls(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD or None,
            max_active=settings.REDIS_MAX_ACTIVE_CONNECTIONS,
            max_idle=settings.REDIS_MAX_IDLE_CONNECTIONS,
            wait=settings.REDIS_POOL_WAIT,
            acquire_timeout=settings.REDIS_POOL_TIMEOUT,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )

    def _default_factory(self) -> QueueConnection:
        return QueueConnection(
            Connection(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
                decode_responses=True,
            )
        )

    @property
    def active(self) -> int:
        return self._active

    @property
    def idle(self) -> int:
        return len(self._idle)

    def stats(self) -> Dict[str, int]:
        return {
            "active": self._active,
            "idle": len(self._idle),
            "max_active": self.max_active,
            "max_idle": self.max_idle,
            "dials": self._dials,
            "dial_failures": self._dial_failures,
        }

    async def _dial(self) -> QueueConnection:
        """
        Open a new connection.

        The connection authenticates during its handshake when a password is
        set, before selecting the database.
        """
        connection = self._connection_factory()
        try:
            await connection.connect()
        except AuthenticationError as e:
            self._dial_failures += 1
            logger.error("Redis authentication failed", host=self.host, port=self.port, error=str(e))
            await self._close_quietly(connection)
            raise AuthError(f"Redis rejected the configured password: {e}") from e
        except (RedisError, OSError) as e:
            self._dial_failures += 1
            logger.error("Redis connection failed", host=self.host, port=self.port, error=str(e))
            await self._close_quietly(connection)
            raise QueueConnectionError(f"Cannot connect to Redis at {self.host}:{self.port}: {e}") from e
        logger.debug("Redis connection established", host=self.host, port=self.port,
                     authenticated=bool(self.password))

        self._dials += 1
        return connection

    async def _borrow_idle(self) -> Optional[QueueConnection]:
        while self._idle:
            connection = self._idle.pop()
            try:
                await connection.ping()
                return connection
            except (RedisError, OSError) as e:
                logger.warning("Discarding idle Redis connection that failed PING", error=str(e))
                await self._close_quietly(connection)
        return None

    async def _take_slot(self):
        if not self.wait:
            if self._slots.locked():
                raise PoolExhaustedError(
                    "Connection pool exhausted",
                    {"active": self._active, "max_active": self.max_active},
                )
            await self._slots.acquire()
            return
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            raise PoolExhaustedError(
                f"No Redis connection available within {self.acquire_timeout}s",
                {"active": self._active, "max_active": self.max_active},
            )

    async def acquire(self) -> QueueConnection:
        """Lease a connection; pair every call with ``release``."""
        if self._closed:
            raise QueueConnectionError("Connection pool is closed")

        await self._take_slot()
        try:
            connection = await self._borrow_idle()
            if connection is None:
                connection = await self._dial()
        except BaseException:
            self._slots.release()
            raise

        self._active += 1
        return connection

    async def release(self, connection: QueueConnection, discard: bool = False):
        """Return a leased connection, closing it when it cannot be kept idle."""
        self._active -= 1
        self._slots.release()
        if discard or self._closed or len(self._idle) >= self.max_idle:
            await self._close_quietly(connection)
        else:
            self._idle.append(connection)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[QueueConnection]:
        """Scoped lease; a connection that raised is discarded, not reused."""
        connection = await self.acquire()
        discard = False
        try:
            yield connection
        except BaseException:
            discard = True
            raise
        finally:
            await self.release(connection, discard=discard)

    async def reset(self):
        """Close every idle connection so the next lease dials afresh."""
        idle, self._idle = self._idle, []
        for connection in idle:
            await self._close_quietly(connection)
        if idle:
            logger.info("Redis connection pool reset", closed=len(idle))

    async def close(self):
        self._closed = True
        await self.reset()
        logger.info("Redis connection pool closed")

    async def _close_quietly(self, connection: QueueConnection):
        try:
            await connection.close()
        except (RedisError, OSError) as e:
            logger.debug("Error closing Redis connection", error=str(e))
