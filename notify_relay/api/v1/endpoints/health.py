from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from notify_relay.api.deps import get_context
from notify_relay.core.context import RelayContext
from notify_relay.core.exceptions import QueueConnectionError
from notify_relay.schemas.health import HealthResponse, PoolStats, QueueStatus

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def health_check(context: RelayContext = Depends(get_context)):
    """Service health including Redis reachability and queue depth."""
    settings = context.settings
    dispatcher = context.dispatcher
    queue_status = QueueStatus(
        name=context.queue.name,
        dispatch_backlog=dispatcher.pending if dispatcher else 0,
    )
    checks = {}

    try:
        queue_status.pending = await context.queue.pending()
        checks["redis"] = "healthy"
    except QueueConnectionError as e:
        queue_status.error = e.message
        checks["redis"] = "unhealthy"

    if dispatcher is not None:
        checks["dispatcher"] = "healthy" if dispatcher.running else "stopped"

    healthy = all(value == "healthy" for value in checks.values())
    health = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        service=settings.APP_NAME,
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        pool=PoolStats(**context.pool.stats()),
        queue=queue_status,
        checks=checks,
    )

    if not healthy:
        return JSONResponse(status_code=503, content=health.model_dump())
    return health
