"""Metrics tracking for question generation.

Tracks attempts, outcomes, failure categories and parse strategies so a run or
session can report how often generation needed retries or fell back to the
static table.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .infrastructure.retry import RetryMetrics

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 100


class GenerationMetrics:
    """Tracks metrics for question generation requests.

    One instance is injected into each orchestrator; there is no global state.
    """

    def __init__(self) -> None:
        """Initialize metrics tracker."""
        self.reset()
        logger.debug("GenerationMetrics initialized")

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        self.started_at: datetime = datetime.now(timezone.utc)

        self.requests = 0
        self.attempts = 0
        self.successes = 0
        self.fallbacks = 0
        self.attempts_by_model: Dict[str, int] = defaultdict(int)
        self.successes_by_model: Dict[str, int] = defaultdict(int)
        self.failures_by_category: Dict[str, int] = defaultdict(int)
        self.parse_strategy_wins: Dict[str, int] = defaultdict(int)
        self.recent_errors: List[Dict[str, Any]] = []
        self.retry_metrics = RetryMetrics()

        logger.debug("Metrics reset")

    def record_request(self) -> None:
        """Record a new logical generation request."""
        self.requests += 1

    def record_attempt(self, model: str, attempt: int) -> None:
        """Record one remote call.

        Args:
            model: Model used
            attempt: Zero-based attempt number within the request
        """
        self.attempts += 1
        self.attempts_by_model[model] += 1
        logger.debug(f"Generation attempt {attempt + 1} with {model}")

    def record_success(self, model: str, attempt: int, parse_strategy: str) -> None:
        """Record a validated question.

        Args:
            model: Model that produced it
            attempt: Zero-based attempt number that succeeded
            parse_strategy: Name of the parse strategy that recovered the object
        """
        self.successes += 1
        self.successes_by_model[model] += 1
        self.parse_strategy_wins[parse_strategy] += 1
        if attempt > 0:
            self.retry_metrics.record_retry(model, success=True)

    def record_failure(
        self,
        model: str,
        attempt: int,
        category: str,
        error: str,
    ) -> None:
        """Record a failed attempt.

        Args:
            model: Model used
            attempt: Zero-based attempt number
            category: Failure category (transport, fatal_api, parse, validation)
            error: Error message
        """
        self.failures_by_category[category] += 1
        if attempt > 0:
            self.retry_metrics.record_retry(model, success=False)

        self.recent_errors.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "model": model,
                "attempt": attempt,
                "category": category,
                "error": error[:200],
            }
        )
        if len(self.recent_errors) > MAX_RECORDED_ERRORS:
            del self.recent_errors[0]

    def record_fallback(self, last_model: Optional[str]) -> None:
        """Record that a request was served from the static table."""
        self.fallbacks += 1
        self.retry_metrics.record_exhausted(last_model or "none")

    def get_summary(self) -> Dict[str, Any]:
        """Get a JSON-serializable summary of all metrics."""
        return {
            "started_at": self.started_at.isoformat(),
            "requests": self.requests,
            "attempts": self.attempts,
            "successes": self.successes,
            "fallbacks": self.fallbacks,
            "fallback_rate": round(self.fallbacks / self.requests, 4) if self.requests else 0.0,
            "attempts_by_model": dict(self.attempts_by_model),
            "successes_by_model": dict(self.successes_by_model),
            "failures_by_category": dict(self.failures_by_category),
            "parse_strategy_wins": dict(self.parse_strategy_wins),
            "retries": self.retry_metrics.get_summary(),
        }
