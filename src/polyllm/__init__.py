# Core client layer
from .llms import (
    CallContext,
    ChunkStream,
    Client,
    ErrorKind,
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    LLMError,
    Message,
    Provider,
    ProviderConfig,
    ProviderRegistry,
    Role,
    StreamChunk,
    ToolCall,
    Usage,
    create_client,
    default_registry,
)

# Middleware
from .middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RetryMiddleware,
    TimeoutMiddleware,
    chain,
)

# Observability
from .observability import MetricsHook, NoOpMetricsHook

# Providers
from .providers import FakeProvider

# Tools
from .tools import Tool

__all__ = [
    # Core client layer
    "CallContext",
    "ChunkStream",
    "Client",
    "ErrorKind",
    "FinishReason",
    "GenerateRequest",
    "GenerateResponse",
    "LLMError",
    "Message",
    "Provider",
    "ProviderConfig",
    "ProviderRegistry",
    "Role",
    "StreamChunk",
    "ToolCall",
    "Usage",
    "create_client",
    "default_registry",
    # Middleware
    "LoggingMiddleware",
    "MetricsMiddleware",
    "RetryMiddleware",
    "TimeoutMiddleware",
    "chain",
    # Observability
    "MetricsHook",
    "NoOpMetricsHook",
    # Providers
    "FakeProvider",
    # Tools
    "Tool",
]
