# src/polyllm/llms/registry.py

import logging
from collections.abc import Callable

from .base import Provider
from .config import ProviderConfig

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig], Provider]


class ProviderRegistry:
    """Caller-owned mapping of provider names to factories.

    Build one, register what you need, pass it where it is needed. There is no
    process-wide instance.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Provider '{name}' already registered")

        self._factories[name] = factory
        logger.debug("Registered provider: %s", name)

    def get(self, name: str) -> ProviderFactory:
        try:
            return self._factories[name]
        except KeyError:
            logger.error("Provider not found: %s", name)
            raise KeyError(f"Unknown LLM provider: {name}") from None

    def remove(self, name: str) -> None:
        try:
            del self._factories[name]
            logger.debug("Removed provider: %s", name)
        except KeyError:
            logger.error("Cannot remove provider, not found: %s", name)
            raise KeyError(f"Unknown LLM provider: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def create(self, name: str, config: ProviderConfig) -> Provider:
        provider = self.get(name)(config)
        logger.info("Created provider %s", name)
        return provider

    def __contains__(self, name: object) -> bool:
        return name in self._factories
