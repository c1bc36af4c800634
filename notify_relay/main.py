from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import Response

from notify_relay.api.v1.endpoints.notifications import build_intake_router
from notify_relay.api.v1.router import api_router
from notify_relay.core.config import Settings, get_settings
from notify_relay.core.context import RelayContext
from notify_relay.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[RelayContext] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the intake application around one relay context."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown."""
        relay = context or RelayContext.for_intake(settings)
        app.state.context = relay
        relay.dispatcher.start()
        logger.info("Intake service startup completed",
                    handler_uri=settings.APP_HANDLER_URI,
                    queue=settings.REDIS_QUEUE)

        yield

        try:
            await relay.aclose()
            logger.info("Intake service shutdown completed")
        except Exception as e:
            logger.error("Intake service shutdown failed", error=str(e))

    app = FastAPI(
        title=settings.APP_NAME,
        description="Accepts notifications over HTTP and queues them for the delivery worker.",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.include_router(build_intake_router(settings.APP_HANDLER_URI))
    app.include_router(api_router, prefix="/v1")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Log unexpected errors; callers get an empty 500."""
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return Response(status_code=500)

    return app


app = create_app()


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.APP_LISTEN_ADDR,
        port=settings.APP_LISTEN_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
