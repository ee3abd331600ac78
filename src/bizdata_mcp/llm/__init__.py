"""Chat completion backends and their shared retry policy."""

from bizdata_mcp.llm.client import CompletionClient, HealthCheck
from bizdata_mcp.llm.factory import (
    LLMProvider,
    create_completion_client,
    is_provider_available,
    resolve_provider,
)
from bizdata_mcp.llm.ollama_client import OllamaCompletionClient
from bizdata_mcp.llm.openai_client import OpenAICompletionClient

__all__ = [
    "CompletionClient",
    "HealthCheck",
    "LLMProvider",
    "OllamaCompletionClient",
    "OpenAICompletionClient",
    "create_completion_client",
    "is_provider_available",
    "resolve_provider",
]
