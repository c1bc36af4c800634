"""
Exception types for the notification relay.

Every failure the relay can observe has its own type so that the intake
dispatcher and the delivery worker can decide, per category, whether to
absorb it (log and move on) or to stop the process.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for all relay errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MissingParameterError(RelayError):
    """A request lacks a required parameter."""

    def __init__(self, parameter: str):
        super().__init__(f"Url Param {parameter} is missing", {"parameter": parameter})
        self.parameter = parameter


class InvalidEnvelopeError(RelayError):
    """Envelope fields cannot be encoded without ambiguity."""


class MalformedEnvelopeError(RelayError):
    """A queue record does not carry token, destination and body."""


class QueueConnectionError(RelayError):
    """The pool could not produce a usable Redis connection."""


class AuthError(QueueConnectionError):
    """Redis rejected the configured credential."""


class PoolExhaustedError(QueueConnectionError):
    """No connection became available within the pool's exhaustion policy."""


class EnqueueError(RelayError):
    """Pushing a record onto the queue failed."""


class DequeueError(RelayError):
    """Popping a record from the queue failed."""


class QueueUnavailableError(RelayError):
    """The queue kept failing after every recovery attempt."""


class SinkUnreachableError(RelayError):
    """The downstream delivery sink cannot be reached."""


class SinkDeliveryError(RelayError):
    """The downstream delivery sink rejected or failed a delivery."""


class DispatchRejectedError(RelayError):
    """The intake dispatch queue is saturated and the policy is to reject."""
