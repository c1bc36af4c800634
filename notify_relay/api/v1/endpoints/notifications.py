from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status

from notify_relay.api.deps import get_intake_service
from notify_relay.core.exceptions import (
    DispatchRejectedError,
    InvalidEnvelopeError,
    MissingParameterError,
)
from notify_relay.core.logging import get_logger
from notify_relay.services.intake_service import IntakeService

logger = get_logger(__name__)


async def send_notification(
    tel: Optional[str] = Query(default=None, description="Destination, e.g. a phone number"),
    msg: Optional[str] = Query(default=None, description="Notification text"),
    service: IntakeService = Depends(get_intake_service),
):
    """
    Accept a notification for delivery.

    The response never reports the outcome: it carries no body, and a
    missing or invalid parameter is only logged. The record is pushed to the
    queue after the response when the dispatcher gets to it.
    """
    try:
        await service.accept(tel, msg)
    except (MissingParameterError, InvalidEnvelopeError):
        pass
    except DispatchRejectedError as e:
        logger.warning("Notification rejected", reason=e.message, **e.details)
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)


def build_intake_router(handler_uri: str) -> APIRouter:
    """Router exposing the intake handler at the configured path."""
    router = APIRouter()
    router.add_api_route(
        handler_uri,
        send_notification,
        methods=["GET"],
        response_class=Response,
        tags=["notifications"],
    )
    return router
