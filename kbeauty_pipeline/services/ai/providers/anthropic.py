"""Anthropic (Claude) AI provider implementation."""

import logging

from kbeauty_pipeline.services.ai.client import (
    AIClient,
    AIProvider,
    AIServiceError,
    Completion,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicClient(AIClient):
    """Anthropic Claude AI client."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, api_key: str, model: str | None = None):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model name (defaults to claude-sonnet-4-20250514).
        """
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package is required. Install with: pip install anthropic"
            )

        self._api_error = anthropic.APIError
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 2048,
    ) -> Completion:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except self._api_error as e:
            logger.error(f"Anthropic API error: {e}")
            raise AIServiceError(f"API error: {e}") from e

        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        text = next(
            (block.text for block in response.content if getattr(block, "type", "") == "text"),
            None,
        )
        if text is None:
            raise AIServiceError("No text block in model response")

        logger.debug(f"Raw AI response: {text[:500]}...")
        return Completion(text=text, usage=usage)
