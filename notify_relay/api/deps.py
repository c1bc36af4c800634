from fastapi import Request

from notify_relay.core.context import RelayContext
from notify_relay.services.intake_service import IntakeService


def get_context(request: Request) -> RelayContext:
    """Dependency returning the process-wide relay context."""
    return request.app.state.context


def get_intake_service(request: Request) -> IntakeService:
    context = get_context(request)
    return IntakeService(context.dispatcher, token_length=context.settings.TOKEN_LENGTH)
