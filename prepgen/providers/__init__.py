"""Chat-completion provider integrations."""

from .base import BaseLLMProvider
from .openrouter_provider import OpenRouterProvider

__all__ = ["BaseLLMProvider", "OpenRouterProvider"]
