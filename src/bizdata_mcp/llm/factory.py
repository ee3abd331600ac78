"""Backend selection for the completion client."""

import logging
from enum import Enum
from typing import Optional, Union

from bizdata_mcp.config import Settings
from bizdata_mcp.errors import ConfigurationError
from bizdata_mcp.llm.client import CompletionClient, HealthCheck
from bizdata_mcp.llm.ollama_client import OllamaCompletionClient
from bizdata_mcp.llm.openai_client import OpenAICompletionClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: str) -> "LLMProvider":
        normalized = value.strip().lower()
        if normalized in ("ollama", "local"):
            return cls.OLLAMA
        if normalized in ("openai", "remote"):
            return cls.OPENAI
        raise ConfigurationError(
            f"Unknown LLM provider '{value}'",
            details="Use 'openai' or 'ollama'",
        )


def resolve_provider(
    settings: Settings, provider: Optional[Union[str, LLMProvider]] = None
) -> LLMProvider:
    """
    Decide which backend to use.

    Order: explicit argument, then ``LLM_PROVIDER``, then whichever backend
    is configured (OpenAI when an API key is present, otherwise Ollama).
    """
    if provider is not None:
        return provider if isinstance(provider, LLMProvider) else LLMProvider.parse(provider)
    if settings.llm_provider:
        return LLMProvider.parse(settings.llm_provider)
    if settings.llm_api_key:
        return LLMProvider.OPENAI
    return LLMProvider.OLLAMA


def create_completion_client(
    settings: Settings, provider: Optional[Union[str, LLMProvider]] = None
) -> CompletionClient:
    """
    Create the completion client for the resolved provider.

    Args:
        settings: Runtime settings
        provider: Optional explicit provider overriding the environment

    Returns:
        A ready-to-use completion client
    """
    chosen = resolve_provider(settings, provider)
    if chosen is LLMProvider.OPENAI:
        logger.info("Using remote completion backend (model %s)", settings.llm_model)
        return OpenAICompletionClient(api_key=settings.llm_api_key, model=settings.llm_model)

    logger.info(
        "Using local completion backend at %s (model %s)",
        settings.ollama_api_url, settings.local_model,
    )
    return OllamaCompletionClient(base_url=settings.ollama_api_url, model=settings.local_model)


async def is_provider_available(
    provider: Union[str, LLMProvider], settings: Settings
) -> bool:
    """
    Check whether a provider can serve requests right now.

    Backends with the ``HealthCheck`` capability are probed; the others are
    considered available when they are configured.
    """
    client = create_completion_client(settings, provider)
    try:
        client.ensure_configured()
    except ConfigurationError:
        return False

    try:
        if isinstance(client, HealthCheck):
            return await client.check_health()
        return True
    finally:
        await client.aclose()
