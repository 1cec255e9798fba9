"""OpenAI AI provider implementation."""

import logging

from kbeauty_pipeline.services.ai.client import (
    AIClient,
    AIProvider,
    AIServiceError,
    Completion,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAIClient(AIClient):
    """OpenAI GPT AI client."""

    provider = AIProvider.OPENAI

    def __init__(self, api_key: str, model: str | None = None):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Model name (defaults to gpt-4o).
        """
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package is required. Install with: pip install openai"
            )

        self._api_error = openai.OpenAIError
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 2048,
    ) -> Completion:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except self._api_error as e:
            logger.error(f"OpenAI API error: {e}")
            raise AIServiceError(f"API error: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise AIServiceError("Empty model response")

        usage = TokenUsage(
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        logger.debug(f"Raw AI response: {text[:500]}...")
        return Completion(text=text, usage=usage)
