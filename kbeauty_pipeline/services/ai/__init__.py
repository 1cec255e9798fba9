"""AI model access for extraction and ingredient enrichment."""

from kbeauty_pipeline.services.ai.client import (
    AIClient,
    AIProvider,
    AIServiceError,
    Completion,
    TokenUsage,
    create_client_from_env,
    get_ai_client,
    parse_json_object,
)
from kbeauty_pipeline.services.ai.cost import CostTracker, estimate_cost

__all__ = [
    "AIClient",
    "AIProvider",
    "AIServiceError",
    "Completion",
    "TokenUsage",
    "create_client_from_env",
    "get_ai_client",
    "parse_json_object",
    "CostTracker",
    "estimate_cost",
]
