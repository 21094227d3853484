# tests/unit/llms/test_factory.py

from unittest.mock import MagicMock, patch

import pytest

from polyllm.llms import (
    Message,
    ProviderConfig,
    ProviderRegistry,
    create_client,
    default_registry,
)
from polyllm.llms.client import Client
from polyllm.llms.errors import InvalidRequestError
from polyllm.middleware.observe import MetricsMiddleware
from polyllm.providers.anthropic import AnthropicProvider
from polyllm.providers.fake import FakeProvider
from polyllm.providers.openai import OpenAIProvider


class TestFactory:
    def test_create_openai_client(self) -> None:
        """Test creating OpenAI client."""
        with patch("polyllm.providers.openai.AsyncOpenAI"):
            client = create_client("openai", ProviderConfig(credential="test"))
            assert isinstance(client, Client)
            assert isinstance(client.provider, OpenAIProvider)

    def test_create_anthropic_client(self) -> None:
        """Test creating Anthropic client."""
        with patch("polyllm.providers.anthropic.AsyncAnthropic"):
            client = create_client("anthropic", {"credential": "test"})
            assert isinstance(client.provider, AnthropicProvider)

    def test_unknown_provider_raises(self) -> None:
        """Test that unknown provider raises KeyError."""
        with pytest.raises(KeyError, match="Unknown LLM provider"):
            create_client("unknown")

    def test_unknown_option_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="api_base"):
            create_client("openai", {"credential": "x", "api_base": "http://x"})

    def test_config_values_passed_through(self) -> None:
        """Test that config values are passed to the SDK client."""
        with patch("polyllm.providers.openai.AsyncOpenAI") as mock_openai:
            client = create_client(
                "openai",
                {
                    "credential": "my-key",
                    "endpoint": "http://localhost:11434/v1",
                    "defaultModel": "llama3",
                    "requestTimeout": 60.0,
                },
            )

            mock_openai.assert_called_once_with(
                api_key="my-key",
                base_url="http://localhost:11434/v1",
                timeout=60.0,
                max_retries=0,
            )
            assert client.request([Message.user("hi")]).model == "llama3"

    def test_custom_registry(self) -> None:
        registry = ProviderRegistry()
        registry.register("fake", lambda config: FakeProvider())

        client = create_client("fake", registry=registry)

        assert isinstance(client.provider, FakeProvider)

    def test_metrics_hook_adds_outermost_metrics_middleware(self) -> None:
        registry = ProviderRegistry()
        registry.register("fake", lambda config: FakeProvider())

        client = create_client("fake", registry=registry, metrics_hook=MagicMock())

        assert isinstance(client.provider, MetricsMiddleware)
        assert isinstance(client.provider.inner, FakeProvider)


class TestProviderRegistry:
    def test_default_registry_is_fresh_each_call(self) -> None:
        first = default_registry()
        second = default_registry()

        first.register("fake", lambda config: FakeProvider())

        assert first is not second
        assert "fake" in first
        assert "fake" not in second
        assert second.names() == ["anthropic", "openai"]

    def test_duplicate_registration_raises(self) -> None:
        registry = ProviderRegistry()
        registry.register("fake", lambda config: FakeProvider())

        with pytest.raises(ValueError, match="already registered"):
            registry.register("fake", lambda config: FakeProvider())

    def test_remove(self) -> None:
        registry = ProviderRegistry()
        registry.register("fake", lambda config: FakeProvider())
        registry.remove("fake")

        assert registry.names() == []
        with pytest.raises(KeyError):
            registry.remove("fake")

    def test_create_passes_config(self) -> None:
        seen = []
        registry = ProviderRegistry()
        registry.register("fake", lambda config: seen.append(config) or FakeProvider())

        config = ProviderConfig(default_model="m1")
        registry.create("fake", config)

        assert seen == [config]
