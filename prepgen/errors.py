"""Exception hierarchy for the question generation pipeline.

Every failure the pipeline can surface derives from ``PrepGenError`` so callers
can catch the whole family with one clause. Transport, fatal API, parse and
validation errors are consumed internally by the orchestrator's retry loop;
rate limit, configuration, fallback and persistence errors reach the caller.
"""

from datetime import datetime
from typing import List, Optional

PARSE_ERROR_PREFIX_LENGTH = 200


class PrepGenError(Exception):
    """Base exception for all pipeline errors."""


class TransportError(PrepGenError):
    """Retryable failure talking to the generation service.

    Raised for HTTP 5xx, HTTP 429, connection failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        model: Optional[str] = None,
    ):
        self.status_code = status_code
        self.model = model
        super().__init__(message)


class FatalAPIError(PrepGenError):
    """Non-retryable HTTP error for a given model (4xx other than 429)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        model: Optional[str] = None,
    ):
        self.status_code = status_code
        self.model = model
        super().__init__(message)


class ParseError(PrepGenError):
    """No parse strategy could recover a JSON object from the response.

    Attributes:
        raw_prefix: First characters of the raw response, for diagnostics
    """

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_prefix = (raw_text or "")[:PARSE_ERROR_PREFIX_LENGTH]
        super().__init__(message)


class ValidationError(PrepGenError):
    """A parsed candidate failed structural validation.

    Attributes:
        errors: Human-readable list of failed checks
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Candidate failed validation: " + "; ".join(self.errors))


class RateLimitError(PrepGenError):
    """The usage limiter denied a generation or evaluation request."""

    def __init__(
        self,
        reason: str,
        reset_time: Optional[datetime] = None,
        retry_after: Optional[float] = None,
    ):
        self.reason = reason
        self.reset_time = reset_time
        self.retry_after = retry_after
        super().__init__(reason)


class ConfigError(PrepGenError):
    """Malformed session configuration, raised before any network call."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid test configuration: " + "; ".join(self.errors))


class NoFallbackError(PrepGenError):
    """No static fallback question exists for the requested test type and section."""


class SessionStateError(PrepGenError):
    """A session operation was attempted in the wrong lifecycle state."""


class ResultPersistenceError(PrepGenError):
    """The result sink failed to store a completed test."""
