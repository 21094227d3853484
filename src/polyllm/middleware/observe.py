# src/polyllm/middleware/observe.py

"""Logging and metrics middleware.

Both only observe: requests, responses and errors pass through untouched,
and every error is re-raised (or re-emitted as the terminal chunk).
"""

import logging
from collections.abc import AsyncIterator
from time import monotonic

from polyllm.llms.base import (
    GenerateRequest,
    GenerateResponse,
    Provider,
    StreamChunk,
    StreamDelta,
    Usage,
)
from polyllm.llms.context import CallContext
from polyllm.llms.errors import LLMError, classify_error
from polyllm.llms.stream import ChunkStream
from polyllm.observability import names
from polyllm.observability.base import MetricsHook, NoOpMetricsHook

from .base import ProviderWrapper

_default_logger = logging.getLogger(__name__)


async def _observe(
    stream: ChunkStream,
    on_chunk,
    on_end,
) -> AsyncIterator[StreamDelta]:
    """Relay ``stream``, reporting each chunk and then the end of the stream.

    ``on_end(final, chunks)`` runs exactly once. ``final`` is None when the
    stream was closed or cancelled before its final chunk.
    """
    final: StreamChunk | None = None
    chunks = 0
    try:
        async with stream:
            async for chunk in stream:
                chunks += 1
                on_chunk(chunk)
                if chunk.is_final:
                    final = chunk
                if chunk.error is not None:
                    raise chunk.error
                yield chunk.delta
    finally:
        on_end(final, chunks)


class LoggingMiddleware(ProviderWrapper):
    """Logs call start, end, latency, token usage and error kind."""

    def __init__(self, inner: Provider, logger: logging.Logger | None = None) -> None:
        super().__init__(inner)
        self._logger = logger or _default_logger

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        self._logger.debug(
            "Calling %s: model=%s, messages=%d, tools=%d",
            self.name,
            request.model,
            len(request.messages),
            len(request.tools),
        )
        start = monotonic()
        try:
            response = await self._inner.generate(request, ctx)
        except Exception as exc:
            self._log_error(request, classify_error(exc, self.name), start)
            raise

        self._logger.info(
            "%s completion: model=%s, finish=%s, tokens=%d, latency=%.0fms",
            self.name,
            request.model,
            response.finish_reason.value,
            response.usage.total_tokens,
            1000 * (monotonic() - start),
        )
        return response

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        self._logger.debug(
            "Streaming %s: model=%s, messages=%d",
            self.name,
            request.model,
            len(request.messages),
        )
        start = monotonic()

        def on_end(chunk: StreamChunk | None, chunks: int) -> None:
            if chunk is None:
                self._logger.info(
                    "%s stream closed early: model=%s, chunks=%d, latency=%.0fms",
                    self.name,
                    request.model,
                    chunks,
                    1000 * (monotonic() - start),
                )
                return
            if chunk.error is not None:
                self._log_error(request, classify_error(chunk.error, self.name), start)
                return
            self._logger.info(
                "%s stream: model=%s, finish=%s, chunks=%d, tokens=%d, latency=%.0fms",
                self.name,
                request.model,
                chunk.finish_reason.value if chunk.finish_reason else None,
                chunks,
                (chunk.usage or Usage()).total_tokens,
                1000 * (monotonic() - start),
            )

        return ChunkStream(
            _observe(self._inner.stream(request, ctx), lambda chunk: None, on_end),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    def _log_error(self, request: GenerateRequest, error: LLMError, start: float) -> None:
        self._logger.warning(
            "%s call failed: model=%s, kind=%s, latency=%.0fms, error=%s",
            self.name,
            request.model,
            error.kind.value,
            1000 * (monotonic() - start),
            error.message,
        )


class MetricsMiddleware(ProviderWrapper):
    """Records latency, counts and token usage through a ``MetricsHook``."""

    def __init__(
        self,
        inner: Provider,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        super().__init__(inner)
        self.metrics_hook = metrics_hook

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        labels = {"provider": self.name, "model": request.model}
        start = monotonic()
        try:
            response = await self._inner.generate(request, ctx)
        except Exception as exc:
            self._record_error(labels, classify_error(exc, self.name))
            raise
        finally:
            self.metrics_hook.record_latency(
                names.LLM_GENERATE_DURATION, 1000 * (monotonic() - start), labels
            )
            self.metrics_hook.increment(names.LLM_REQUESTS_TOTAL, labels=labels)

        self._record_usage(labels, response.usage)
        return response

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        labels = {"provider": self.name, "model": request.model}
        start = monotonic()
        seen_first = False

        def on_chunk(chunk: StreamChunk) -> None:
            nonlocal seen_first
            if not seen_first and chunk.error is None:
                seen_first = True
                self.metrics_hook.record_latency(
                    names.LLM_STREAM_TIME_TO_FIRST_CHUNK,
                    1000 * (monotonic() - start),
                    labels,
                )

        def on_end(chunk: StreamChunk | None, chunks: int) -> None:
            self.metrics_hook.record_latency(
                names.LLM_STREAM_DURATION, 1000 * (monotonic() - start), labels
            )
            self.metrics_hook.increment(names.LLM_STREAMS_TOTAL, labels=labels)
            self.metrics_hook.increment(names.LLM_STREAM_CHUNKS_TOTAL, chunks, labels=labels)
            if chunk is None:
                return
            if chunk.error is not None:
                self._record_error(labels, classify_error(chunk.error, self.name))
            elif chunk.usage is not None:
                self._record_usage(labels, chunk.usage)

        return ChunkStream(
            _observe(self._inner.stream(request, ctx), on_chunk, on_end),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    def _record_error(self, labels: dict[str, str], error: LLMError) -> None:
        self.metrics_hook.increment(
            names.LLM_ERRORS_TOTAL, labels={**labels, "kind": error.kind.value}
        )

    def _record_usage(self, labels: dict[str, str], usage: Usage) -> None:
        self.metrics_hook.increment(names.LLM_TOKENS_PROMPT, usage.prompt_tokens, labels)
        self.metrics_hook.increment(
            names.LLM_TOKENS_COMPLETION, usage.completion_tokens, labels
        )
        self.metrics_hook.increment(
            names.LLM_TOKENS_TOTAL,
            usage.total_tokens,  # type: ignore[arg-type]
            labels,
        )
