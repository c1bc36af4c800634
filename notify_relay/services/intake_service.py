from typing import Optional

from notify_relay.core.envelope import Envelope, encode_envelope
from notify_relay.core.exceptions import InvalidEnvelopeError, MissingParameterError
from notify_relay.core.logging import get_logger
from notify_relay.core.tokens import DEFAULT_TOKEN_LENGTH, generate_token
from notify_relay.services.dispatcher import EnqueueDispatcher


class IntakeService:
    """Turns an intake request into a queued envelope."""

    def __init__(self, dispatcher: EnqueueDispatcher, token_length: int = DEFAULT_TOKEN_LENGTH):
        self.dispatcher = dispatcher
        self.token_length = token_length
        self.logger = get_logger(self.__class__.__name__)

    async def accept(self, tel: Optional[str], msg: Optional[str]) -> Envelope:
        """
        Validate the request, build the envelope and hand it to the dispatcher.

        Returns once the record is buffered; the Redis push happens later and
        its outcome is only logged.
        """
        for name, value in (("tel", tel), ("msg", msg)):
            if not value:
                error = MissingParameterError(name)
                self.logger.error(error.message, parameter=name)
                raise error

        envelope = Envelope(token=generate_token(self.token_length), destination=tel, body=msg)
        log = self.logger.with_context(token=envelope.token)
        try:
            record = encode_envelope(envelope.token, envelope.destination, envelope.body)
        except InvalidEnvelopeError as e:
            log.error("Rejected notification", error=e.message, **e.details)
            raise

        accepted = await self.dispatcher.submit(record)
        log.debug("Notification accepted", destination=tel, buffered=accepted)
        return envelope
