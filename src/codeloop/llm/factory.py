from typing import Any

from .base import LLMProvider
from .providers import AnthropicProvider, OpenAIProvider

_PROVIDERS: dict[str, type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "claude": AnthropicProvider,
}


def create_llm_provider(provider: str, **config: Any) -> LLMProvider:
    """Build the completion provider named by `provider`.

    Args:
        provider: 'openai' (also any OpenAI-compatible server via
            base_url) or 'anthropic' / 'claude'
        **config: Keyword arguments for the provider class. `api_key` is
            required by both; OpenAI also takes `model`, `base_url`,
            `organization` and `function_calling`, Anthropic takes
            `model` and `base_url`.

    Raises:
        ValueError: If the provider is unknown
        TypeError: If `api_key` is missing

    Example:
        >>> llm = create_llm_provider("anthropic", api_key="sk-ant-...")
    """
    provider_cls = _PROVIDERS.get(provider.lower())
    if provider_cls is None:
        raise ValueError(
            f"Unsupported provider: {provider}. "
            f"Supported providers: 'openai', 'anthropic'"
        )
    if "api_key" not in config:
        raise TypeError(f"{provider_cls.__name__} requires 'api_key' in config")
    return provider_cls(**config)
