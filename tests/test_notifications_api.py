"""
Tests for the intake HTTP surface.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from notify_relay.api.deps import get_intake_service
from notify_relay.core.context import RelayContext
from notify_relay.core.envelope import decode_envelope
from notify_relay.core.exceptions import DispatchRejectedError, QueueConnectionError
from notify_relay.main import create_app
from notify_relay.services.dispatcher import EnqueueDispatcher


class RecordingQueue:
    """Queue double that keeps pushed records in a list."""

    def __init__(self, name="notifications"):
        self.name = name
        self.records = []
        self.unreachable = False

    async def push(self, record):
        self.records.append(record)
        return True

    async def pending(self):
        if self.unreachable:
            raise QueueConnectionError("Cannot connect to Redis at localhost:6379")
        return len(self.records)


@pytest.fixture
def recording_queue():
    return RecordingQueue()


@pytest.fixture
def context(settings, recording_queue):
    pool = MagicMock()
    pool.close = AsyncMock()
    pool.stats.return_value = {
        "active": 0, "idle": 1, "max_active": 10, "max_idle": 3, "dials": 1, "dial_failures": 0,
    }
    dispatcher = EnqueueDispatcher(recording_queue, workers=1)
    return RelayContext(settings, pool, recording_queue, dispatcher=dispatcher)


@pytest.fixture
def app(settings, context):
    return create_app(settings, context=context, configure_logging=False)


class TestIntakeEndpoint:
    """Test cases for the intake route."""

    def test_valid_request_queues_envelope(self, app, recording_queue):
        with TestClient(app) as client:
            response = client.get("/send", params={"tel": "5551234", "msg": "Hello"})

        assert response.status_code == 200
        assert response.content == b""
        assert len(recording_queue.records) == 1
        envelope = decode_envelope(recording_queue.records[0])
        assert len(envelope.token) == 12
        assert envelope.destination == "5551234"
        assert envelope.body == "Hello"

    def test_body_with_spaces_is_kept_whole(self, app, recording_queue):
        with TestClient(app) as client:
            client.get("/send", params={"tel": "5551234", "msg": "Server down now"})

        assert recording_queue.records[0].endswith(" 5551234 Server down now")

    @pytest.mark.parametrize("params", [{"tel": "5551234"}, {"msg": "Hello"}, {}])
    def test_missing_parameter_queues_nothing(self, app, recording_queue, params):
        with TestClient(app) as client:
            response = client.get("/send", params=params)

        assert response.status_code == 200
        assert response.content == b""
        assert recording_queue.records == []

    def test_destination_with_space_queues_nothing(self, app, recording_queue):
        with TestClient(app) as client:
            response = client.get("/send", params={"tel": "555 1234", "msg": "Hello"})

        assert response.content == b""
        assert recording_queue.records == []

    def test_saturated_dispatcher_answers_503(self, app):
        service = MagicMock()
        service.accept = AsyncMock(side_effect=DispatchRejectedError("Enqueue dispatcher is saturated"))
        app.dependency_overrides[get_intake_service] = lambda: service

        with TestClient(app) as client:
            response = client.get("/send", params={"tel": "5551234", "msg": "Hello"})

        assert response.status_code == 503
        assert response.content == b""

    def test_handler_uri_is_configurable(self, settings, context, recording_queue):
        settings.APP_HANDLER_URI = "/nagios/sms"
        app = create_app(settings, context=context, configure_logging=False)

        with TestClient(app) as client:
            assert client.get("/send", params={"tel": "1", "msg": "x"}).status_code == 404
            client.get("/nagios/sms", params={"tel": "5551234", "msg": "Hello"})

        assert len(recording_queue.records) == 1

    def test_shutdown_closes_context(self, app, context):
        with TestClient(app):
            assert context.dispatcher.running

        assert not context.dispatcher.running
        context.pool.close.assert_awaited_once()


class TestHealthEndpoint:
    """Test cases for the health route."""

    def test_healthy(self, app, recording_queue):
        recording_queue.records.append("tok 5551234 Hello")

        with TestClient(app) as client:
            response = client.get("/v1/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["queue"]["pending"] == 1
        assert data["pool"]["max_active"] == 10
        assert data["checks"] == {"redis": "healthy", "dispatcher": "healthy"}

    def test_unreachable_redis_is_unhealthy(self, app, recording_queue):
        recording_queue.unreachable = True

        with TestClient(app) as client:
            response = client.get("/v1/health/")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "unhealthy"
