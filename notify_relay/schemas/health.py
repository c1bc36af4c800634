from typing import Dict, Optional
from pydantic import BaseModel


class PoolStats(BaseModel):
    active: int
    idle: int
    max_active: int
    max_idle: int
    dials: int
    dial_failures: int


class QueueStatus(BaseModel):
    name: str
    pending: Optional[int] = None
    dispatch_backlog: int = 0
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str  # healthy|unhealthy
    service: str
    version: str
    environment: str
    pool: PoolStats
    queue: QueueStatus
    checks: Dict[str, str] = {}
