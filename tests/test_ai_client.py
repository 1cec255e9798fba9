"""Tests for the AI client helpers, providers and cost accounting."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kbeauty_pipeline.services.ai.client import (
    AIProvider,
    AIServiceError,
    TokenUsage,
    create_client_from_env,
    get_ai_client,
    parse_json_object,
    strip_code_fences,
)
from kbeauty_pipeline.services.ai.cost import CostTracker, estimate_cost

try:
    import anthropic  # noqa: F401

    HAS_ANTHROPIC = True
except ImportError:
    HAS_ANTHROPIC = False

try:
    import openai  # noqa: F401

    HAS_OPENAI = True
except ImportError:
    HAS_OPENAI = False


class TestStripCodeFences:
    """Tests for fence removal."""

    def test_json_fence(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self) -> None:
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self) -> None:
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseJsonObject:
    """Tests for lenient JSON parsing of model replies."""

    def test_plain_json(self) -> None:
        assert parse_json_object('{"name_en": "Snail Mucin"}') == {"name_en": "Snail Mucin"}

    def test_fenced_json(self) -> None:
        text = '```json\n{"category": "essence", "volume_ml": 100}\n```'
        assert parse_json_object(text) == {"category": "essence", "volume_ml": 100}

    def test_json_with_surrounding_text(self) -> None:
        text = 'Here is the product:\n{"brand_en": "COSRX"}\nLet me know!'
        assert parse_json_object(text) == {"brand_en": "COSRX"}

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError, match="Failed to parse"):
            parse_json_object("not json at all")

    def test_array_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_json_object("[1, 2, 3]")


class TestCost:
    """Tests for token cost estimation."""

    def test_cost_formula(self) -> None:
        # 1000 * 3e-6 + 500 * 15e-6 = 0.003 + 0.0075
        assert estimate_cost(1000, 500) == 0.0105

    def test_cost_is_rounded(self) -> None:
        assert estimate_cost(1, 1) == 0.0

    def test_tracker_accumulates(self) -> None:
        tracker = CostTracker()
        tracker.record(TokenUsage(input_tokens=1000, output_tokens=200))
        tracker.record(TokenUsage(input_tokens=500, output_tokens=300))

        summary = tracker.summary
        assert summary["calls"] == 2
        assert summary["input_tokens"] == 1500
        assert summary["output_tokens"] == 500
        assert summary["estimated_cost_usd"] == estimate_cost(1500, 500)


class TestGetAIClient:
    """Tests for the provider factory."""

    @pytest.mark.skipif(not HAS_ANTHROPIC, reason="anthropic package not installed")
    def test_get_anthropic_client(self) -> None:
        from kbeauty_pipeline.services.ai.providers.anthropic import DEFAULT_MODEL, AnthropicClient

        client = get_ai_client("anthropic", api_key="test-key")

        assert isinstance(client, AnthropicClient)
        assert client.provider == AIProvider.ANTHROPIC
        assert client.model == DEFAULT_MODEL

    @pytest.mark.skipif(not HAS_OPENAI, reason="openai package not installed")
    def test_get_openai_client_with_model(self) -> None:
        client = get_ai_client(AIProvider.OPENAI, api_key="test-key", model="gpt-4o-mini")

        assert client.provider == AIProvider.OPENAI
        assert client.model == "gpt-4o-mini"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            get_ai_client("mystery", api_key="test-key")


class TestCreateClientFromEnv:
    """Tests for environment-driven client creation."""

    def test_missing_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.delenv("AI_PROVIDER", raising=False)

        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            create_client_from_env()

    @pytest.mark.skipif(not HAS_OPENAI, reason="openai package not installed")
    def test_openai_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "openai")
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("AI_MODEL", "gpt-4o")

        client = create_client_from_env()

        assert client.provider == AIProvider.OPENAI
        assert client.model == "gpt-4o"


@pytest.mark.skipif(not HAS_ANTHROPIC, reason="anthropic package not installed")
class TestAnthropicClient:
    """Tests for the Anthropic provider with a mocked SDK client."""

    @pytest.mark.asyncio
    async def test_complete_returns_text_and_usage(self) -> None:
        from kbeauty_pipeline.services.ai.providers.anthropic import AnthropicClient

        client = AnthropicClient(api_key="test-key")
        response = MagicMock()
        response.content = [MagicMock(type="text", text='{"ok": true}')]
        response.usage = MagicMock(input_tokens=120, output_tokens=30)

        with patch.object(client, "client") as sdk:
            sdk.messages.create = AsyncMock(return_value=response)
            completion = await client.complete("system", "prompt")

        assert completion.text == '{"ok": true}'
        assert completion.usage.input_tokens == 120
        assert completion.usage.output_tokens == 30

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_service_error(self) -> None:
        from kbeauty_pipeline.services.ai.providers.anthropic import AnthropicClient

        client = AnthropicClient(api_key="test-key")

        with patch.object(client, "client") as sdk:
            sdk.messages.create = AsyncMock(
                side_effect=anthropic.APIError("overloaded", request=MagicMock(), body=None)
            )
            with pytest.raises(AIServiceError):
                await client.complete("system", "prompt")
