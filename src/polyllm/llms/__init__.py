# src/polyllm/llms/__init__.py

"""Unified LLM client layer for polyllm.

One stable contract over heterogeneous providers.

Design principles:
- One contract: Provider.generate / Provider.stream, nothing provider-specific
- One provider per Client: swapping it never touches call sites
- Classified failures: every error carries exactly one ErrorKind
- Explicit composition: middleware wraps the provider in the order given

Example:
    >>> from polyllm.llms import create_client, GenerateRequest, Message
    >>>
    >>> client = create_client("openai", {"credential": "sk-..."})
    >>> request = GenerateRequest(model="gpt-4o", messages=[Message.user("Hello!")])
    >>>
    >>> response = await client.generate(request)
    >>> print(response.content)
    >>>
    >>> async with client.stream(request) as stream:
    ...     async for chunk in stream:
    ...         print(chunk.text, end="")
"""

from .base import (
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    Message,
    Provider,
    Role,
    StreamChunk,
    StreamDelta,
    TextPart,
    ToolCall,
    ToolCallDelta,
    ToolCallPart,
    Usage,
)
from .client import Client
from .config import ProviderConfig
from .context import CallContext, background
from .errors import (
    AuthenticationError,
    ContentFilteredError,
    ErrorKind,
    InternalError,
    InvalidRequestError,
    LLMError,
    LLMTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
    RequestCancelledError,
    UnsupportedFeatureError,
    classify_error,
    error_for,
)
from .factory import create_client, default_registry
from .registry import ProviderFactory, ProviderRegistry
from .stream import ChunkStream

__all__ = [
    # Factory
    "create_client",
    "default_registry",
    "ProviderFactory",
    "ProviderRegistry",
    # Facade
    "Client",
    # Protocol
    "Provider",
    # Config
    "ProviderConfig",
    # Context
    "CallContext",
    "background",
    # Streaming
    "ChunkStream",
    "StreamChunk",
    "StreamDelta",
    # Types
    "FinishReason",
    "GenerateRequest",
    "GenerateResponse",
    "Message",
    "Role",
    "TextPart",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallPart",
    "Usage",
    # Errors
    "AuthenticationError",
    "ContentFilteredError",
    "ErrorKind",
    "InternalError",
    "InvalidRequestError",
    "LLMError",
    "LLMTimeoutError",
    "ProviderUnavailableError",
    "RateLimitError",
    "RequestCancelledError",
    "UnsupportedFeatureError",
    "classify_error",
    "error_for",
]
