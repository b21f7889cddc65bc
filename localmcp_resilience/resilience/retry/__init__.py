from .backoff import jittered_delay, proportional_jitter
from .decorators import retry
from .policy import RetryOutcome, RetryPolicy
from .strategies import ExponentialBackoffStrategy

__all__ = [
    "retry",
    "RetryPolicy",
    "RetryOutcome",
    "ExponentialBackoffStrategy",
    "jittered_delay",
    "proportional_jitter",
]
