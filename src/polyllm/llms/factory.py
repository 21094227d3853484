# src/polyllm/llms/factory.py

from collections.abc import Mapping, Sequence
from typing import Any

from polyllm.middleware.base import Middleware
from polyllm.middleware.observe import MetricsMiddleware
from polyllm.observability.base import MetricsHook

from .base import Provider
from .client import Client
from .config import ProviderConfig
from .registry import ProviderRegistry


def _openai(config: ProviderConfig) -> Provider:
    from polyllm.providers.openai import OpenAIProvider

    return OpenAIProvider(config)


def _anthropic(config: ProviderConfig) -> Provider:
    from polyllm.providers.anthropic import AnthropicProvider

    return AnthropicProvider(config)


def default_registry() -> ProviderRegistry:
    """Return a fresh registry with the built-in SDK providers.

    Every call returns a new registry; add your own providers to it.
    """
    registry = ProviderRegistry()
    registry.register("openai", _openai)
    registry.register("anthropic", _anthropic)
    return registry


def create_client(
    provider: str,
    config: ProviderConfig | Mapping[str, Any] | None = None,
    *,
    registry: ProviderRegistry | None = None,
    middleware: Sequence[Middleware] = (),
    metrics_hook: MetricsHook | None = None,
) -> Client:
    """Create a Client bound to one provider.

    Args:
        provider: Registered provider name, e.g. "openai".
        config: ProviderConfig or a mapping of provider options.
        registry: Where to look the provider up. Defaults to ``default_registry()``.
        middleware: Wrappers, outermost first.
        metrics_hook: When given, metrics are recorded by an outermost
            MetricsMiddleware.

    Returns:
        Configured Client.

    Raises:
        KeyError: If provider is unknown.
        InvalidRequestError: If config contains unrecognised options.

    Example:
        >>> client = create_client("openai", {"credential": "sk-...", "defaultModel": "gpt-4o"})
        >>> response = await client.generate(client.request([Message.user("Hi")]))
    """
    if config is None:
        config = ProviderConfig()
    elif not isinstance(config, ProviderConfig):
        config = ProviderConfig.from_mapping(config)

    if registry is None:
        registry = default_registry()
    layers = list(middleware)
    if metrics_hook is not None:
        layers.insert(0, lambda inner: MetricsMiddleware(inner, metrics_hook))

    return Client(
        registry.create(provider, config),
        layers,
        default_model=config.default_model,
    )
