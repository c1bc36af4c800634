from .delivery_sink import DeliverySink, LogSink, OracleProcedureSink, create_sink
from .dispatcher import EnqueueDispatcher
from .intake_service import IntakeService

__all__ = [
    "DeliverySink",
    "LogSink",
    "OracleProcedureSink",
    "create_sink",
    "EnqueueDispatcher",
    "IntakeService",
]
