"""Exponential backoff with additive jitter for generation retries."""

import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ..config import settings

MIN_RETRY_DELAY = 0.0


@dataclass
class RetryConfig:
    """Retry budget and backoff shape for one generation request.

    Defaults come from settings so deployments can tune them via environment.
    """

    max_retries: int = field(default_factory=lambda: settings.max_retries)
    base_delay: float = field(default_factory=lambda: settings.retry_base_delay)
    max_delay: float = field(default_factory=lambda: settings.retry_max_delay)
    jitter: float = field(default_factory=lambda: settings.retry_jitter)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(
        self, attempt: int, rand: Optional[Callable[[float, float], float]] = None
    ) -> float:
        """Backoff delay before the attempt following ``attempt``."""
        return calculate_backoff_delay(
            attempt=attempt,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            rand=rand,
        )


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 1.0,
    rand: Optional[Callable[[float, float], float]] = None,
) -> float:
    """
    Calculate the delay before the next attempt.

    ``min(base_delay * 2**attempt, max_delay)`` plus uniform jitter in
    ``[0, jitter]``.

    Args:
        attempt: Zero-based number of the attempt that just failed
        base_delay: Delay after the first failure, in seconds
        max_delay: Cap on the exponential part, in seconds
        jitter: Upper bound of the random additive component
        rand: Uniform random source ``(low, high) -> float``; defaults to
            ``random.uniform``

    Returns:
        Delay in seconds
    """
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    uniform = rand or random.uniform
    exponential = min(base_delay * (2 ** attempt), max_delay)
    spread = uniform(0.0, jitter) if jitter > 0 else 0.0
    return max(MIN_RETRY_DELAY, exponential + spread)


class RetryMetrics:
    """Tracks retry statistics per model."""

    def __init__(self) -> None:
        self.total_retries = 0
        self.successful_retries = 0
        self.exhausted_retries = 0
        self.retries_by_model: Dict[str, int] = defaultdict(int)

    def record_retry(self, model: str, success: bool) -> None:
        """Record an attempt after the first one.

        Args:
            model: Model used for the retry
            success: Whether the retry produced a valid question
        """
        self.total_retries += 1
        self.retries_by_model[model] += 1
        if success:
            self.successful_retries += 1

    def record_exhausted(self, model: str) -> None:
        """Record that a request used its whole budget without success."""
        self.exhausted_retries += 1
        self.retries_by_model.setdefault(model, 0)

    def get_summary(self) -> Dict[str, object]:
        """Get summary of retry metrics."""
        return {
            "total_retries": self.total_retries,
            "successful_retries": self.successful_retries,
            "exhausted_retries": self.exhausted_retries,
            "success_rate": (
                self.successful_retries / self.total_retries
                if self.total_retries > 0
                else 0.0
            ),
            "retries_by_model": dict(self.retries_by_model),
        }
