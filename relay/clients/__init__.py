"""LLM backend providers."""

from relay.clients.anthropic import AnthropicConfig, AnthropicProvider
from relay.clients.base import AIProvider
from relay.clients.errors import NotConfiguredError, ProviderError
from relay.clients.openai_compat import GLM_BASE_URL, KIMI_BASE_URL, OPENAI_BASE_URL, OpenAICompatibleProvider
from relay.config import RelayConfig
from relay.utils.logging import get_logger

logger = get_logger(__name__)

OPENAI_COMPATIBLE_PRESETS: dict[str, tuple[str, str]] = {
    "openai": (OPENAI_BASE_URL, "gpt-4o"),
    "glm": (GLM_BASE_URL, "glm-4"),
    "kimi": (KIMI_BASE_URL, "moonshot-v1-8k"),
}


def create_provider(config: RelayConfig) -> AIProvider:
    """Build the provider named by config.provider."""
    name = config.provider.lower()
    if not config.api_key:
        raise NotConfiguredError(f"no API key configured for provider '{name}'")

    if name in ("claude", "anthropic"):
        logger.info(f"Using Anthropic provider with model {config.model}")
        return AnthropicProvider(
            api_key=config.api_key,
            base_url=config.base_url,
            config=AnthropicConfig(
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
            ),
        )

    if name in OPENAI_COMPATIBLE_PRESETS:
        base_url, default_model = OPENAI_COMPATIBLE_PRESETS[name]
        # Fall back to the preset model when given an Anthropic model name
        model = config.model if not config.model.startswith("claude") else default_model
        logger.info(f"Using {name} provider with model {model}")
        return OpenAICompatibleProvider(
            api_key=config.api_key,
            base_url=config.base_url or base_url,
            default_model=model,
            provider_name=name,
        )

    raise NotConfiguredError(f"unknown provider '{config.provider}'")


__all__ = [
    "AIProvider",
    "AnthropicConfig",
    "AnthropicProvider",
    "NotConfiguredError",
    "OpenAICompatibleProvider",
    "ProviderError",
    "create_provider",
]
