# src/polyllm/llms/errors.py

"""Provider-independent error taxonomy.

Every failure that leaves the core is an ``LLMError`` carrying exactly one
``ErrorKind``. Adapters map their native failures in front of
``classify_error``; anything they do not recognise ends up as ``INTERNAL``.
The raw provider error is kept on ``.raw`` (and chained as ``__cause__``).
"""

import asyncio
from enum import Enum


class ErrorKind(str, Enum):
    """Stable error classification shared by callers and middleware."""

    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION_FAILED = "authentication_failed"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    CONTENT_FILTERED = "content_filtered"
    UNSUPPORTED_FEATURE = "unsupported_feature"
    INTERNAL = "internal"


RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.PROVIDER_UNAVAILABLE, ErrorKind.TIMEOUT}
)


class LLMError(Exception):
    """Base class for all classified failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        raw: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.raw = raw
        if raw is not None:
            self.__cause__ = raw

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        prefix = f"[{self.kind.value}]"
        if self.provider:
            prefix = f"[{self.provider}:{self.kind.value}]"
        return f"{prefix} {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"message={self.message!r}, provider={self.provider!r})"
        )


class InvalidRequestError(LLMError):
    kind = ErrorKind.INVALID_REQUEST


class AuthenticationError(LLMError):
    kind = ErrorKind.AUTHENTICATION_FAILED


class RateLimitError(LLMError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        raw: BaseException | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider=provider, raw=raw)
        self.retry_after = retry_after


class LLMTimeoutError(LLMError):
    """Network-level or per-call timeout. Retryable.

    Not to be confused with the caller's own deadline, which is reported as
    ``RequestCancelledError``.
    """

    kind = ErrorKind.TIMEOUT


class RequestCancelledError(LLMError):
    kind = ErrorKind.CANCELLED


class ProviderUnavailableError(LLMError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class ContentFilteredError(LLMError):
    kind = ErrorKind.CONTENT_FILTERED


class UnsupportedFeatureError(LLMError):
    kind = ErrorKind.UNSUPPORTED_FEATURE


class InternalError(LLMError):
    kind = ErrorKind.INTERNAL


_ERROR_TYPES: dict[ErrorKind, type[LLMError]] = {
    cls.kind: cls
    for cls in (
        InvalidRequestError,
        AuthenticationError,
        RateLimitError,
        LLMTimeoutError,
        RequestCancelledError,
        ProviderUnavailableError,
        ContentFilteredError,
        UnsupportedFeatureError,
        InternalError,
    )
}


def error_for(
    kind: ErrorKind,
    message: str,
    *,
    provider: str | None = None,
    raw: BaseException | None = None,
) -> LLMError:
    """Build the ``LLMError`` subclass for ``kind``."""
    return _ERROR_TYPES[kind](message, provider=provider, raw=raw)


def classify_error(exc: BaseException, provider: str | None = None) -> LLMError:
    """Map an arbitrary exception onto the taxonomy.

    Already-classified errors pass through unchanged. This is the generic
    fallback; provider adapters map their SDK exceptions before calling it.
    """
    if isinstance(exc, LLMError):
        if exc.provider is None and provider is not None:
            exc.provider = provider
        return exc

    message = str(exc) or type(exc).__name__
    # asyncio.TimeoutError is an alias of TimeoutError on 3.11+
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        kind = ErrorKind.TIMEOUT
    elif isinstance(exc, ConnectionError):
        kind = ErrorKind.PROVIDER_UNAVAILABLE
    elif isinstance(exc, NotImplementedError):
        kind = ErrorKind.UNSUPPORTED_FEATURE
    elif isinstance(exc, (ValueError, TypeError)):
        kind = ErrorKind.INVALID_REQUEST
    else:
        kind = ErrorKind.INTERNAL

    return error_for(kind, message, provider=provider, raw=exc)
