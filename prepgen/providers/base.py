"""Base class for generation providers."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..error_classifier import ClassifiedError, ErrorClassifier
from ..errors import FatalAPIError, PrepGenError, TransportError

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """Abstract base class for chat-completion provider integrations.

    Providers make exactly one request per call. Retrying, model rotation and
    fallback belong to the orchestrator, so implementations must disable any
    client-side retries.
    """

    def __init__(self, api_key: str, default_model: Optional[str] = None):
        """
        Initialize the provider.

        Args:
            api_key: API key for the provider
            default_model: Model used when a call does not name one
        """
        self.api_key = api_key
        self.default_model = default_model

    @abstractmethod
    async def generate_completion(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> str:
        """
        Generate a completion from a single user message.

        Args:
            prompt: The prompt to send to the model
            model: Model identifier, defaults to ``default_model``
            temperature: Sampling temperature
            max_tokens: Maximum number of tokens to generate
            **kwargs: Additional provider-specific parameters

        Returns:
            The generated text content

        Raises:
            TransportError: Retryable failure (5xx, 429, network, timeout)
            FatalAPIError: Non-retryable HTTP failure for this model
            ParseError: The response carried no content
        """

    async def cleanup(self) -> None:
        """Release network resources. Default is a no-op."""

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        Returns:
            Provider name (e.g., "openrouter")
        """
        return self.__class__.__name__.replace("Provider", "").lower()

    def _handle_api_error(self, error: Exception, model: Optional[str]) -> PrepGenError:
        """Classify an API error and convert it to the pipeline taxonomy.

        Args:
            error: The exception raised by the client
            model: Model the request was made for

        Returns:
            TransportError when retryable, FatalAPIError otherwise
        """
        classified: ClassifiedError = ErrorClassifier.classify_error(
            error=error,
            provider=self.get_provider_name(),
        )
        logger.warning(f"{classified} [model={model}]")

        if classified.is_retryable:
            return TransportError(
                str(classified), status_code=classified.status_code, model=model
            )
        return FatalAPIError(str(classified), status_code=classified.status_code, model=model)
