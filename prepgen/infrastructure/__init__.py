"""Infrastructure components: retry, storage, usage limiting and scheduling."""

from .retry import RetryConfig, RetryMetrics, calculate_backoff_delay
from .scheduler import PrefetchScheduler
from .storage import InMemoryStorage, JSONFileStorage, KeyValueStore, RedisStorage
from .usage_limiter import (
    EVALUATIONS,
    QUESTIONS,
    KindLimits,
    UsageDecision,
    UsageLimiter,
    UsageLimits,
)

__all__ = [
    "EVALUATIONS",
    "QUESTIONS",
    "InMemoryStorage",
    "JSONFileStorage",
    "KeyValueStore",
    "KindLimits",
    "PrefetchScheduler",
    "RedisStorage",
    "RetryConfig",
    "RetryMetrics",
    "UsageDecision",
    "UsageLimiter",
    "UsageLimits",
    "calculate_backoff_delay",
]
