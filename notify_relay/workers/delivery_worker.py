r"""
Delivery worker: moves queued notifications into the downstream sink.

One sequential loop, one message in flight. Every iteration first checks
that the sink is reachable, so the worker never takes work it cannot
deliver; an unreachable sink stops the process for an external supervisor
to restart. Dequeue errors are retried with exponential backoff on fresh
connections until the retry budget runs out.

    CHECK_SINK --ok--> DEQUEUE --record--> PROCESS --> CHECK_SINK
        |                 |  \--empty--> BACKOFF --> CHECK_SINK
        |                 \--error--> (reset pool, backoff) --> CHECK_SINK
        \--unreachable--> FATAL <--retries exhausted--/
"""

import asyncio
import sys
from enum import Enum
from typing import Awaitable, Callable, Optional

from notify_relay.core.config import Settings, get_settings
from notify_relay.core.context import RelayContext
from notify_relay.core.envelope import decode_envelope
from notify_relay.core.exceptions import (
    DequeueError,
    EnqueueError,
    MalformedEnvelopeError,
    QueueUnavailableError,
    RelayError,
    SinkDeliveryError,
    SinkUnreachableError,
)
from notify_relay.core.logging import get_logger, setup_logging
from notify_relay.core.queue_policies import DEFAULT_DEQUEUE_POLICY, RetryPolicy, compute_backoff
from notify_relay.core.redis_pool import RedisConnectionPool
from notify_relay.core.redis_queue import RedisQueue
from notify_relay.services.delivery_sink import DeliverySink

logger = get_logger(__name__)


class WorkerState(str, Enum):
    CHECK_SINK = "check_sink"
    DEQUEUE = "dequeue"
    PROCESS = "process"
    BACKOFF = "backoff"
    FATAL = "fatal"


class DeliveryWorker:
    """Single sequential consumer of the notification queue."""

    def __init__(
        self,
        queue: RedisQueue,
        pool: RedisConnectionPool,
        sink: DeliverySink,
        poll_interval: float = 1.0,
        sink_timeout: Optional[float] = 30.0,
        retry_policy: RetryPolicy = DEFAULT_DEQUEUE_POLICY,
        failure_policy: str = "drop",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if failure_policy not in ("drop", "requeue", "dead_letter"):
            raise ValueError(f"Unknown sink failure policy: {failure_policy}")
        self.queue = queue
        self.pool = pool
        self.sink = sink
        self.poll_interval = poll_interval
        self.sink_timeout = sink_timeout
        self.retry_policy = retry_policy
        self.failure_policy = failure_policy
        self.dead_letter_queue = RedisQueue(pool, f"{queue.name}:failed")
        self._sleep = sleep

        self.state = WorkerState.CHECK_SINK
        self.fatal_error: Optional[RelayError] = None
        self.dequeue_attempts = 0
        self.delivered = 0
        self.failed = 0
        self._record = ""

    @classmethod
    def from_context(cls, context: RelayContext) -> "DeliveryWorker":
        settings = context.settings
        return cls(
            context.queue,
            context.pool,
            context.sink,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            sink_timeout=settings.SINK_TIMEOUT_SECONDS,
            retry_policy=RetryPolicy.for_dequeue(settings),
            failure_policy=settings.SINK_FAILURE_POLICY,
        )

    async def step(self) -> WorkerState:
        """Run the current state and move to the next one."""
        handlers = {
            WorkerState.CHECK_SINK: self._check_sink,
            WorkerState.DEQUEUE: self._dequeue,
            WorkerState.PROCESS: self._process,
            WorkerState.BACKOFF: self._backoff,
            WorkerState.FATAL: self._fatal,
        }
        self.state = await handlers[self.state]()
        return self.state

    async def run(self, max_steps: Optional[int] = None) -> WorkerState:
        """
        Loop until the worker reaches FATAL, then raise the error that caused it.

        ``max_steps`` bounds the number of transitions; the state reached is
        returned when the bound is hit first.
        """
        logger.info("Starting delivery worker", queue=self.queue.name,
                    failure_policy=self.failure_policy)
        steps = 0
        while self.state is not WorkerState.FATAL:
            if max_steps is not None and steps >= max_steps:
                return self.state
            await self.step()
            steps += 1
        raise self.fatal_error

    async def _check_sink(self) -> WorkerState:
        try:
            await asyncio.wait_for(self.sink.ping(), timeout=self.sink_timeout)
        except SinkUnreachableError as e:
            return self._enter_fatal(e)
        except asyncio.TimeoutError:
            return self._enter_fatal(SinkUnreachableError(f"Sink ping timed out after {self.sink_timeout}s"))
        return WorkerState.DEQUEUE

    async def _dequeue(self) -> WorkerState:
        try:
            record = await self.queue.pop()
        except DequeueError as e:
            return await self._recover_from_dequeue_error(e)

        self.dequeue_attempts = 0
        if not record:
            return WorkerState.BACKOFF
        self._record = record
        return WorkerState.PROCESS

    async def _recover_from_dequeue_error(self, error: DequeueError) -> WorkerState:
        self.dequeue_attempts += 1
        if self.dequeue_attempts > self.retry_policy.max_retries:
            return self._enter_fatal(QueueUnavailableError(
                f"Queue still failing after {self.retry_policy.max_retries} retries: {error.message}",
                {"queue": self.queue.name},
            ))

        delay = compute_backoff(self.retry_policy, self.dequeue_attempts)
        logger.error("Cannot pop data from queue, restarting loop",
                     queue=self.queue.name,
                     attempt=self.dequeue_attempts,
                     max_retries=self.retry_policy.max_retries,
                     delay=round(delay, 3),
                     error=error.message)
        await self.pool.reset()
        await self._sleep(delay)
        return WorkerState.CHECK_SINK

    async def _backoff(self) -> WorkerState:
        await self._sleep(self.poll_interval)
        return WorkerState.CHECK_SINK

    async def _process(self) -> WorkerState:
        record, self._record = self._record, ""
        try:
            envelope = decode_envelope(record, strict=True)
        except MalformedEnvelopeError as e:
            self.failed += 1
            logger.error("Dropping malformed record", error=e.message, record=record)
            return WorkerState.CHECK_SINK
        if not envelope.destination:
            self.failed += 1
            logger.error("Dropping record without destination", token=envelope.token)
            return WorkerState.CHECK_SINK

        log = logger.with_context(token=envelope.token, destination=envelope.destination)
        try:
            await asyncio.wait_for(
                self.sink.send(envelope.body, envelope.destination),
                timeout=self.sink_timeout,
            )
        except (SinkDeliveryError, asyncio.TimeoutError) as e:
            self.failed += 1
            log.error("Delivery failed", error=str(e) or "timed out", policy=self.failure_policy)
            await self._handle_delivery_failure(record)
        else:
            self.delivered += 1
            log.info("Notification delivered")
        return WorkerState.CHECK_SINK

    async def _handle_delivery_failure(self, record: str):
        if self.failure_policy == "drop":
            return
        target = self.queue if self.failure_policy == "requeue" else self.dead_letter_queue
        try:
            await target.push(record)
            logger.warning("Failed record queued", queue=target.name)
        except EnqueueError as e:
            logger.error("Failed record lost", queue=target.name, error=e.message)

    async def _fatal(self) -> WorkerState:
        return WorkerState.FATAL

    def _enter_fatal(self, error: RelayError) -> WorkerState:
        self.fatal_error = error
        logger.critical("Delivery worker cannot continue", error=error.message)
        return WorkerState.FATAL


async def run_worker(settings: Settings, context: Optional[RelayContext] = None):
    """Run a delivery worker until it reaches a fatal state."""
    context = context or RelayContext.for_worker(settings)
    worker = DeliveryWorker.from_context(context)
    try:
        await worker.run()
    finally:
        await context.aclose()


def main():
    settings = get_settings()
    setup_logging(settings)
    try:
        asyncio.run(run_worker(settings))
    except (SinkUnreachableError, QueueUnavailableError) as e:
        logger.critical("Delivery worker stopped", error=e.message)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Delivery worker interrupted")


if __name__ == "__main__":
    main()
