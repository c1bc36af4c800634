from .health import HealthResponse, PoolStats, QueueStatus

__all__ = [
    "HealthResponse",
    "PoolStats",
    "QueueStatus",
]
