# src/polyllm/middleware/timeout.py

import logging
from collections.abc import AsyncIterator

from polyllm.llms.base import GenerateRequest, GenerateResponse, Provider, StreamDelta
from polyllm.llms.context import CallContext
from polyllm.llms.errors import LLMTimeoutError, RequestCancelledError
from polyllm.llms.stream import ChunkStream

from .base import ProviderWrapper

logger = logging.getLogger(__name__)


class TimeoutMiddleware(ProviderWrapper):
    """Per-call deadline, independent of the caller's.

    The stricter deadline wins. Hitting our own deadline is a ``Timeout``
    (retryable when an outer RetryMiddleware is present); hitting the
    caller's deadline stays ``Cancelled``.
    """

    def __init__(self, inner: Provider, timeout: float) -> None:
        super().__init__(inner)
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        parent = ctx or CallContext()
        child = parent.with_timeout(self._timeout)
        try:
            return await child.run(self._inner.generate(request, child))
        except RequestCancelledError as exc:
            raise self._translate(exc, parent, child)

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        parent = ctx or CallContext()
        child = parent.with_timeout(self._timeout)
        return ChunkStream(
            self._timed(self._inner.stream(request, child), parent, child),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    async def _timed(
        self, stream: ChunkStream, parent: CallContext, child: CallContext
    ) -> AsyncIterator[StreamDelta]:
        async with stream:
            while True:
                try:
                    chunk = await child.run(stream.__anext__())
                except StopAsyncIteration:
                    return
                except RequestCancelledError as exc:
                    raise self._translate(exc, parent, child)
                if isinstance(chunk.error, RequestCancelledError):
                    raise self._translate(chunk.error, parent, child)
                if chunk.error is not None:
                    raise chunk.error
                yield chunk.delta

    def _translate(
        self,
        exc: RequestCancelledError,
        parent: CallContext,
        child: CallContext,
    ) -> Exception:
        if parent.cancelled:
            return exc
        if parent.deadline is not None and parent.deadline <= child.deadline:  # type: ignore[operator]
            # Caller's deadline is the binding one
            return exc
        logger.warning("%s call exceeded timeout of %.2fs", self.name, self._timeout)
        return LLMTimeoutError(
            f"Call exceeded timeout of {self._timeout}s", provider=self.name, raw=exc
        )
