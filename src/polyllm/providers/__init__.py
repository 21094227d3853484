# src/polyllm/providers/__init__.py

"""Provider adapters.

Each adapter satisfies ``polyllm.llms.Provider``. The SDK-backed ones are
imported from their modules (``polyllm.providers.openai``,
``polyllm.providers.anthropic``) or built through ``create_client`` so the
SDKs are only loaded when used.
"""

from .fake import FakeProvider

__all__ = [
    "FakeProvider",
]
