"""
LLM Providers
=============
Vendor clients behind the ``CompletionProvider`` interface.
"""

import structlog
from pydantic import TypeAdapter

from gateway.config import Settings
from gateway.providers.base import (
    CompletionOptions,
    CompletionProvider,
    GeminiProviderConfig,
    OpenAIProviderConfig,
    ProviderCheck,
    ProviderCompletion,
    ProviderConfig,
)
from gateway.providers.gemini import GeminiProvider
from gateway.providers.openai import OpenAIProvider

logger = structlog.get_logger()

_config_adapter: TypeAdapter = TypeAdapter(ProviderConfig)


def build_provider(config: ProviderConfig | dict) -> CompletionProvider:
    """Build the provider matching a configuration variant."""
    if isinstance(config, dict):
        config = _config_adapter.validate_python(config)
    if isinstance(config, OpenAIProviderConfig):
        return OpenAIProvider(config)
    if isinstance(config, GeminiProviderConfig):
        return GeminiProvider(config)
    raise ValueError(f"Unsupported provider config: {config!r}")


def build_providers(settings: Settings) -> dict[str, CompletionProvider]:
    """Build every provider that has credentials, in configuration order."""
    configs: list[ProviderConfig] = []
    if settings.openai_api_key:
        configs.append(OpenAIProviderConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=settings.provider_timeout,
        ))
    if settings.gemini_api_key:
        configs.append(GeminiProviderConfig(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            timeout=settings.provider_timeout,
        ))

    providers = {config.kind: build_provider(config) for config in configs}
    if not providers:
        logger.warning("No LLM providers configured")
    else:
        logger.info("Providers configured", providers=list(providers))
    return providers


__all__ = [
    "CompletionOptions",
    "CompletionProvider",
    "ProviderCheck",
    "ProviderCompletion",
    "ProviderConfig",
    "OpenAIProviderConfig",
    "GeminiProviderConfig",
    "OpenAIProvider",
    "GeminiProvider",
    "build_provider",
    "build_providers",
]
