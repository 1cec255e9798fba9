"""AI provider implementations."""

from kbeauty_pipeline.services.ai.providers.anthropic import AnthropicClient
from kbeauty_pipeline.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
