import random
from dataclasses import dataclass

from notify_relay.core.config import Settings


@dataclass
class RetryPolicy:
    max_retries: int
    base_delay_seconds: float
    backoff_multiplier: float
    max_delay_seconds: float
    jitter_seconds: float

    @classmethod
    def for_dequeue(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.DEQUEUE_MAX_RETRIES,
            base_delay_seconds=settings.DEQUEUE_BASE_DELAY_SECONDS,
            backoff_multiplier=2.0,
            max_delay_seconds=settings.DEQUEUE_MAX_DELAY_SECONDS,
            jitter_seconds=settings.DEQUEUE_BASE_DELAY_SECONDS / 2,
        )


DEFAULT_DEQUEUE_POLICY = RetryPolicy(
    max_retries=5,
    base_delay_seconds=1.0,
    backoff_multiplier=2.0,
    max_delay_seconds=60.0,
    jitter_seconds=0.5,
)


def compute_backoff(policy: RetryPolicy, attempts: int) -> float:
    """Delay before retry number ``attempts`` (1-based), capped, plus jitter."""
    delay = min(
        policy.base_delay_seconds * (policy.backoff_multiplier ** max(0, attempts - 1)),
        policy.max_delay_seconds,
    )
    return max(0.0, delay + random.uniform(0, policy.jitter_seconds))
