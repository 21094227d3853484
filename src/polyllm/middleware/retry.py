# src/polyllm/middleware/retry.py

import asyncio
import logging
from collections.abc import AsyncIterator

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential,
    wait_random,
)

from polyllm.llms.base import GenerateRequest, GenerateResponse, Provider, StreamDelta
from polyllm.llms.context import CallContext
from polyllm.llms.errors import LLMError
from polyllm.llms.stream import ChunkStream

from .base import ProviderWrapper, relay

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LLMError) and exc.retryable


class RetryMiddleware(ProviderWrapper):
    """Retries transient failures with exponential backoff and jitter.

    Transport only: retries ``RateLimited``, ``ProviderUnavailable`` and
    ``Timeout``; everything else surfaces after one attempt. Streams are
    retried only while nothing has been delivered to the caller.
    """

    def __init__(
        self,
        inner: Provider,
        *,
        max_attempts: int = 3,
        max_elapsed: float = 30.0,
        initial: float = 0.5,
        max_backoff: float = 10.0,
        jitter: float = 0.5,
    ) -> None:
        super().__init__(inner)
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._max_elapsed = max_elapsed
        self._initial = initial
        self._max_backoff = max_backoff
        self._jitter = jitter

    def _retrying(self, ctx: CallContext | None) -> AsyncRetrying:
        async def _sleep(seconds: float) -> None:
            if ctx is None:
                await asyncio.sleep(seconds)
            else:
                await ctx.run(asyncio.sleep(seconds))

        return AsyncRetrying(
            # Stops before a backoff sleep that would overrun max_elapsed
            stop=stop_after_attempt(self._max_attempts)
            | stop_before_delay(self._max_elapsed),
            wait=wait_exponential(multiplier=self._initial, max=self._max_backoff)
            + wait_random(0, self._jitter),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=_sleep,
            reraise=True,
        )

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        async for attempt in self._retrying(ctx):
            with attempt:
                return await self._inner.generate(request, ctx)

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        return ChunkStream(
            self._retrying_source(request, ctx),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    async def _retrying_source(
        self, request: GenerateRequest, ctx: CallContext | None
    ) -> AsyncIterator[StreamDelta]:
        stream: ChunkStream | None = None
        first = None
        async for attempt in self._retrying(ctx):
            with attempt:
                stream = self._inner.stream(request, ctx)
                first = await stream.__anext__()
                if first.error is not None:
                    # Nothing has reached the caller yet, safe to retry
                    await stream.aclose()
                    raise first.error

        assert stream is not None and first is not None
        try:
            yield first.delta
            if first.is_final:
                return
            # Output has been delivered: from here on faults pass through untouched
            async for delta in relay(stream):
                yield delta
        finally:
            await stream.aclose()
