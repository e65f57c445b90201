"""OpenRouter provider integration.

OpenRouter exposes an OpenAI-compatible chat completions API, so this provider
uses the OpenAI SDK with a different base URL. One provider instance serves
every model in the fallback list; the model is chosen per call.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..config import settings
from ..errors import ParseError
from .base import BaseLLMProvider

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseLLMProvider):
    """OpenRouter API integration for question generation and evaluation."""

    def __init__(
        self,
        api_key: str,
        default_model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        app_title: Optional[str] = None,
        app_referer: Optional[str] = None,
    ):
        """
        Initialize OpenRouter provider.

        Args:
            api_key: OpenRouter API key (starts with "sk-or-")
            default_model: Model used when a call does not name one
            base_url: API base URL, defaults to settings
            timeout: Per-request timeout in seconds, defaults to settings
            app_title: Value for the X-Title attribution header
            app_referer: Value for the HTTP-Referer attribution header
        """
        super().__init__(api_key=api_key, default_model=default_model)
        self.provider_name = "openrouter"
        self.base_url = base_url or settings.openrouter_base_url

        headers: Dict[str, str] = {
            "HTTP-Referer": app_referer or settings.app_referer,
            "X-Title": app_title or settings.app_title,
        }

        # SDK retries are disabled; the orchestrator owns retry and backoff
        self.async_client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            max_retries=0,
            timeout=httpx.Timeout(timeout or settings.request_timeout, connect=10.0),
            default_headers=headers,
        )

        logger.info(f"Initialized OpenRouter provider at {self.base_url}")

    async def generate_completion(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> str:
        """
        Generate a text completion through OpenRouter.

        Args:
            prompt: The prompt to generate from
            model: Model identifier (e.g., "openai/gpt-4o-mini")
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
            **kwargs: Additional arguments passed to the API

        Returns:
            Generated text response

        Raises:
            TransportError: On retryable failures
            FatalAPIError: On non-retryable HTTP failures
            ParseError: If the response has no content
        """
        model_to_use = model or self.default_model
        if not model_to_use:
            raise ValueError("No model given and no default model configured")

        try:
            response = await self.async_client.chat.completions.create(
                model=model_to_use,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except (OpenAIError, httpx.HTTPError) as e:
            raise self._handle_api_error(e, model_to_use) from e

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        if not content.strip():
            raise ParseError(f"Empty response content from {model_to_use}", content)

        logger.debug(f"OpenRouter response from {model_to_use}: {content[:500]}")
        return content

    def get_provider_name(self) -> str:
        return self.provider_name

    async def cleanup(self) -> None:
        """Clean up async resources.

        Closes the async client to release connection pools and file handles.
        """
        if getattr(self, "async_client", None) is not None:
            await self.async_client.close()
