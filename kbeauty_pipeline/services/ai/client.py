"""AI client interface and provider abstraction."""

import json
import os
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_OUTER_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class AIServiceError(Exception):
    """The model call itself failed (network, auth, rate limit, empty reply)."""


class TokenUsage(BaseModel):
    """Token counts reported for one model call."""

    input_tokens: int = 0
    output_tokens: int = 0


class Completion(BaseModel):
    """Text returned by a model call plus its token usage."""

    text: str
    usage: TokenUsage = TokenUsage()


class AIClient(ABC):
    """Abstract base class for AI providers."""

    provider: AIProvider
    model: str

    @abstractmethod
    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 2048,
    ) -> Completion:
        """
        Send one system + user prompt pair and return the text reply.

        Args:
            system: System prompt.
            prompt: User message.
            max_tokens: Output token limit.

        Returns:
            Completion with the reply text and token usage.

        Raises:
            AIServiceError: If the provider call fails or returns no text.
        """
        pass


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Tries the raw text, then the text with code fences stripped, then the
    outermost {...} span.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    candidates = [text]
    cleaned = strip_code_fences(text)
    candidates.append(cleaned)
    match = _OUTER_OBJECT.search(cleaned)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ValueError(f"Failed to parse model response as JSON: {text[:200]}")


def get_ai_client(
    provider: AIProvider | str,
    api_key: str,
    model: str | None = None,
) -> AIClient:
    """
    Factory function to get an AI client for the specified provider.

    Args:
        provider: The AI provider to use.
        api_key: The API key for the provider.
        model: Optional model name override.

    Returns:
        An AIClient instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if isinstance(provider, str):
        provider = AIProvider(provider.lower())

    if provider == AIProvider.ANTHROPIC:
        from kbeauty_pipeline.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from kbeauty_pipeline.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


def create_client_from_env() -> AIClient:
    """
    Build a client from AI_PROVIDER, AI_MODEL and the provider's API key.

    Raises:
        ValueError: If the provider is unknown or its API key is not set.
    """
    provider = AIProvider(os.environ.get("AI_PROVIDER", AIProvider.ANTHROPIC.value).lower())
    key_var = "ANTHROPIC_API_KEY" if provider == AIProvider.ANTHROPIC else "OPENAI_API_KEY"
    api_key = os.environ.get(key_var, "")
    if not api_key:
        raise ValueError(f"{key_var} is not set")
    return get_ai_client(provider, api_key, model=os.environ.get("AI_MODEL") or None)
