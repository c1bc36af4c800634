"""
End-to-end relay flow over the in-memory Redis server.
"""
import pytest

from notify_relay.core.envelope import decode_envelope
from notify_relay.services.dispatcher import EnqueueDispatcher
from notify_relay.services.intake_service import IntakeService
from notify_relay.workers.delivery_worker import DeliveryWorker, WorkerState


class TestRelayFlow:
    """Intake and worker sharing one queue."""

    @pytest.mark.asyncio
    async def test_notification_travels_from_intake_to_sink(self, queue, pool, redis_server, sink, no_sleep):
        dispatcher = EnqueueDispatcher(queue, workers=1)
        dispatcher.start()
        envelope = await IntakeService(dispatcher).accept("5551234", "Hello")
        await dispatcher.stop()

        [record] = redis_server.members("notifications")
        assert record == f"{envelope.token} 5551234 Hello"

        worker = DeliveryWorker(queue, pool, sink, sleep=no_sleep)
        assert await worker.run(max_steps=3) is WorkerState.CHECK_SINK

        assert sink.deliveries == [("Hello", "5551234")]
        assert redis_server.members("notifications") == []
        assert pool.active == 0

    @pytest.mark.asyncio
    async def test_identical_notifications_are_both_delivered(self, queue, pool, sink, no_sleep):
        dispatcher = EnqueueDispatcher(queue, workers=1)
        dispatcher.start()
        service = IntakeService(dispatcher)
        await service.accept("5551234", "Server down now")
        await service.accept("5551234", "Server down now")
        await dispatcher.stop()

        worker = DeliveryWorker(queue, pool, sink, sleep=no_sleep)
        await worker.run(max_steps=6)

        assert sink.deliveries == [("Server down now", "5551234")] * 2

    @pytest.mark.asyncio
    async def test_worker_recovers_after_redis_outage(self, queue, pool, redis_server, sink, no_sleep):
        await queue.push("tok 5551234 Hello")
        assert pool.idle == 1
        redis_server.down = True

        worker = DeliveryWorker(queue, pool, sink, sleep=no_sleep)
        assert await worker.run(max_steps=2) is WorkerState.CHECK_SINK
        assert pool.idle == 0

        redis_server.down = False
        await worker.run(max_steps=3)

        assert sink.deliveries == [("Hello", "5551234")]

    @pytest.mark.asyncio
    async def test_dead_letter_queue_receives_failed_record(self, queue, pool, redis_server, sink, no_sleep):
        await queue.push("tok 5551234 Hello")
        sink.fail_delivery = True

        worker = DeliveryWorker(queue, pool, sink, failure_policy="dead_letter", sleep=no_sleep)
        await worker.run(max_steps=3)

        assert redis_server.members("notifications") == []
        assert decode_envelope(redis_server.members("notifications:failed")[0]).body == "Hello"
