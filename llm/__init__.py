"""
LLM Module - Unified interface for LLM providers.

Usage:
    from llm import get_client

    client = get_client()  # Uses config settings
    response = client.generate("Your prompt here")
    print(response.content)

Supported providers:
- openai: OpenAI Chat Completions (default model gpt-4o-mini)
- glm: Z.AI GLM via OpenAI-compatible API
- anthropic: Claude via the Anthropic SDK
"""
from typing import Optional

from config import settings
from .base import (
    LLMClient,
    LLMResponse,
    LLMCallRecord,
    Message,
    set_llm_context,
    get_llm_context,
)
from .openai_client import OpenAICompatibleClient, GLMClient
from .anthropic_client import AnthropicClient


# Provider mapping
_PROVIDERS = {
    "openai": OpenAICompatibleClient,
    "glm": GLMClient,
    "anthropic": AnthropicClient,
}

# Default models per provider
_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "glm": "glm-4.7",
    "anthropic": "claude-3-5-haiku-latest",
}

_API_KEY_SETTINGS = {
    "openai": "OPENAI_API_KEY",
    "glm": "GLM_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def default_model(provider: Optional[str] = None) -> str:
    """Model used when neither the caller nor settings name one."""
    provider = (provider or settings.LLM_PROVIDER).lower()
    return settings.LLM_MODEL or _DEFAULT_MODELS.get(provider, "")


def get_client(
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    verify_ssl: Optional[bool] = None,
) -> LLMClient:
    """
    Get an LLM client instance.

    Args:
        provider: Provider name. Defaults to settings.LLM_PROVIDER
        api_key: API key. Defaults to the provider's key in settings
        model: Model name. Defaults to settings.LLM_MODEL or provider default
        verify_ssl: Whether to verify SSL. Defaults to settings.LLM_VERIFY_SSL

    Returns:
        Configured LLMClient instance

    Example:
        client = get_client("openai")
        response = client.generate("Summarize this: ...")
    """
    provider = (provider or settings.LLM_PROVIDER).lower()

    if provider not in _PROVIDERS:
        raise ValueError(f"Unknown LLM provider: {provider}. Available: {list(_PROVIDERS.keys())}")

    if api_key is None:
        api_key = getattr(settings, _API_KEY_SETTINGS[provider])

    if not api_key:
        raise ValueError(f"API key required for provider: {provider}")

    model = model or default_model(provider)

    if verify_ssl is None:
        verify_ssl = settings.LLM_VERIFY_SSL

    client_class = _PROVIDERS[provider]
    return client_class(
        api_key=api_key,
        model=model,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        verify_ssl=verify_ssl,
    )


__all__ = [
    "get_client",
    "default_model",
    "set_llm_context",
    "get_llm_context",
    "LLMClient",
    "LLMResponse",
    "LLMCallRecord",
    "Message",
    "OpenAICompatibleClient",
    "GLMClient",
    "AnthropicClient",
]
