"""Error classification for generation API failures.

Maps exceptions raised by the OpenAI-compatible client into categories so the
orchestrator can decide between retrying (transport problems) and abandoning a
model (fatal request problems).
"""

import re
from enum import Enum
from typing import List, Optional

import httpx
import openai


class ErrorCategory(Enum):
    """Categories of API errors."""

    RATE_LIMIT = "rate_limit"  # HTTP 429 / throttling
    SERVER_ERROR = "server_error"  # Provider server errors (5xx)
    NETWORK_ERROR = "network_error"  # Connection/timeout errors
    AUTHENTICATION = "authentication"  # API key invalid or expired
    BILLING_QUOTA = "billing_quota"  # Insufficient credits
    INVALID_REQUEST = "invalid_request"  # Malformed request or invalid parameters
    MODEL_ERROR = "model_error"  # Model not found or unavailable
    UNKNOWN = "unknown"  # Unclassified errors


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    CRITICAL = "critical"  # Requires attention (e.g., credentials)
    HIGH = "high"  # Important but transient (e.g., rate limits)
    MEDIUM = "medium"  # Should be addressed (e.g., invalid requests)
    LOW = "low"  # Informational (e.g., temporary network issues)


RETRYABLE_CATEGORIES = frozenset(
    {
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.SERVER_ERROR,
        ErrorCategory.NETWORK_ERROR,
    }
)


class ClassifiedError:
    """A classified API error with category and severity."""

    def __init__(
        self,
        category: ErrorCategory,
        severity: ErrorSeverity,
        provider: str,
        original_error: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        """Initialize classified error.

        Args:
            category: Error category
            severity: Error severity level
            provider: Provider name
            original_error: Original exception type name
            message: Human-readable error message
            status_code: HTTP status code when the error came from a response
        """
        self.category = category
        self.severity = severity
        self.provider = provider
        self.original_error = original_error
        self.message = message
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Whether another attempt could succeed without changing the request."""
        return self.category in RETRYABLE_CATEGORIES

    def __str__(self) -> str:
        """String representation of classified error."""
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return (
            f"[{self.severity.value.upper()}] {self.provider}: "
            f"{self.category.value}{status} - {self.message}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "provider": self.provider,
            "original_error": self.original_error,
            "message": self.message,
            "status_code": self.status_code,
            "is_retryable": self.is_retryable,
        }


class ErrorClassifier:
    """Classifies API errors from the generation service."""

    # Patterns used when an error carries no HTTP status
    NETWORK_PATTERNS = [
        r"connection.*error",
        r"timed?\s*out",
        r"network.*error",
        r"connection.*refused",
        r"connection.*reset",
        r"dns.*error",
    ]

    MODEL_PATTERNS = [
        r"model.*not.*found",
        r"invalid.*model",
        r"model.*unavailable",
        r"no endpoints found",
    ]

    @staticmethod
    def classify_status(status_code: int) -> ErrorCategory:
        """Map an HTTP status code to an error category."""
        if status_code == 429:
            return ErrorCategory.RATE_LIMIT
        if status_code >= 500:
            return ErrorCategory.SERVER_ERROR
        if status_code in (401, 403):
            return ErrorCategory.AUTHENTICATION
        if status_code == 402:
            return ErrorCategory.BILLING_QUOTA
        if status_code == 404:
            return ErrorCategory.MODEL_ERROR
        if 400 <= status_code < 500:
            return ErrorCategory.INVALID_REQUEST
        return ErrorCategory.UNKNOWN

    @staticmethod
    def classify_error(error: Exception, provider: str) -> ClassifiedError:
        """Classify an API error.

        Args:
            error: The exception that was raised
            provider: Provider name

        Returns:
            ClassifiedError with category and severity
        """
        error_type = type(error).__name__
        error_str = str(error)

        # Timeout is a subclass of APIConnectionError, so check it first
        if isinstance(error, (openai.APITimeoutError, httpx.TimeoutException)):
            return ClassifiedError(
                category=ErrorCategory.NETWORK_ERROR,
                severity=ErrorSeverity.LOW,
                provider=provider,
                original_error=error_type,
                message="Request timed out. This may be temporary.",
            )

        if isinstance(error, (openai.APIConnectionError, httpx.TransportError)):
            return ClassifiedError(
                category=ErrorCategory.NETWORK_ERROR,
                severity=ErrorSeverity.LOW,
                provider=provider,
                original_error=error_type,
                message="Network connectivity issue. This may be temporary.",
            )

        if isinstance(error, openai.APIStatusError):
            status_code = error.status_code
            category = ErrorClassifier.classify_status(status_code)
            return ClassifiedError(
                category=category,
                severity=ErrorClassifier._severity_for(category),
                provider=provider,
                original_error=error_type,
                message=ErrorClassifier._message_for(category, provider, error_str),
                status_code=status_code,
            )

        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.NETWORK_PATTERNS):
            category = ErrorCategory.NETWORK_ERROR
        elif ErrorClassifier._match_patterns(error_str, ErrorClassifier.MODEL_PATTERNS):
            category = ErrorCategory.MODEL_ERROR
        else:
            category = ErrorCategory.UNKNOWN

        return ClassifiedError(
            category=category,
            severity=ErrorClassifier._severity_for(category),
            provider=provider,
            original_error=error_type,
            message=ErrorClassifier._message_for(category, provider, error_str),
        )

    @staticmethod
    def _severity_for(category: ErrorCategory) -> ErrorSeverity:
        if category in (ErrorCategory.AUTHENTICATION, ErrorCategory.BILLING_QUOTA):
            return ErrorSeverity.CRITICAL
        if category == ErrorCategory.RATE_LIMIT:
            return ErrorSeverity.HIGH
        if category == ErrorCategory.NETWORK_ERROR:
            return ErrorSeverity.LOW
        return ErrorSeverity.MEDIUM

    @staticmethod
    def _message_for(category: ErrorCategory, provider: str, error_str: str) -> str:
        messages = {
            ErrorCategory.RATE_LIMIT: f"Rate limit exceeded for {provider}.",
            ErrorCategory.SERVER_ERROR: f"{provider} server error. This may be temporary.",
            ErrorCategory.NETWORK_ERROR: "Network connectivity issue. This may be temporary.",
            ErrorCategory.AUTHENTICATION: (
                f"Authentication failed. Please verify your {provider} API key."
            ),
            ErrorCategory.BILLING_QUOTA: (
                f"Billing or credit issue detected. Check your {provider} account balance."
            ),
            ErrorCategory.INVALID_REQUEST: f"Invalid request to {provider}. Check request parameters.",
            ErrorCategory.MODEL_ERROR: f"Model unavailable on {provider}. Verify the model name.",
        }
        return messages.get(
            category, f"Unclassified error from {provider}: {error_str[:100]}"
        )

    @staticmethod
    def _match_patterns(text: str, patterns: List[str]) -> bool:
        """Check if text matches any of the given regex patterns."""
        for pattern in patterns:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False
