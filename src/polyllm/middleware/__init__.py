# src/polyllm/middleware/__init__.py

"""Contract-preserving wrappers around a Provider.

Example:
    >>> from functools import partial
    >>> from polyllm.middleware import RetryMiddleware, TimeoutMiddleware, LoggingMiddleware
    >>>
    >>> client = Client(
    ...     provider,
    ...     middleware=[
    ...         LoggingMiddleware,                          # outermost
    ...         partial(RetryMiddleware, max_attempts=5),
    ...         partial(TimeoutMiddleware, timeout=20.0),   # per attempt
    ...     ],
    ... )
"""

from .base import Middleware, ProviderWrapper, apply, chain, relay
from .observe import LoggingMiddleware, MetricsMiddleware
from .retry import RetryMiddleware
from .timeout import TimeoutMiddleware

__all__ = [
    # Composition
    "Middleware",
    "ProviderWrapper",
    "apply",
    "chain",
    "relay",
    # Middleware
    "LoggingMiddleware",
    "MetricsMiddleware",
    "RetryMiddleware",
    "TimeoutMiddleware",
]
