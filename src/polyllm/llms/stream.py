# src/polyllm/llms/stream.py

"""Stream multiplexer: raw provider deltas in, ordered typed chunks out.

Guarantees for every ``ChunkStream``:
- chunk indices start at 0 and increase by one, no gaps
- exactly one chunk has ``is_final=True`` and it is the last one
- source failures and ``CallContext`` cancellation end the stream with a
  final chunk carrying the classified error; the source is closed first
- pull-driven: one ``__anext__`` reads at most one delta from the source
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

from .base import (
    FinishReason,
    GenerateResponse,
    Message,
    StreamChunk,
    StreamDelta,
    ToolCall,
    Usage,
)
from .context import CallContext
from .errors import LLMError, classify_error

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


class ChunkStream:
    """Cancellable, ordered, non-restartable sequence of ``StreamChunk``.

    Consume with ``async for`` (ideally inside ``async with`` so an early
    ``break`` releases the source), or drain with ``collect()``.
    """

    def __init__(
        self,
        source: AsyncIterator[StreamDelta],
        *,
        ctx: CallContext | None = None,
        provider: str | None = None,
        model: str = "",
    ) -> None:
        self._source = source
        self._ctx = ctx
        self._provider = provider
        self._model = model
        self._index = 0
        self._usage = Usage()
        self._finished = False
        self._closed = False
        self._started = monotonic()

    @property
    def usage(self) -> Usage:
        """Usage accumulated so far; final once the stream has finished."""
        return self._usage

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def provider(self) -> str | None:
        return self._provider

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self._finished:
            raise StopAsyncIteration

        try:
            if self._ctx is not None:
                item = await self._ctx.run(self._pull())
            else:
                item = await self._pull()
        except asyncio.CancelledError:
            # Caller's task was cancelled: release and let it propagate
            self._finished = True
            await self._release()
            raise
        except Exception as exc:
            return await self._fail(classify_error(exc, self._provider))

        if item is _EXHAUSTED:
            return await self._finish(StreamDelta(), FinishReason.STOP)

        delta: StreamDelta = item  # type: ignore[assignment]
        if delta.usage is not None:
            self._usage = self._usage + delta.usage
        if delta.finish_reason is not None:
            return await self._finish(delta, delta.finish_reason)
        return self._emit(delta)

    async def aclose(self) -> None:
        """Stop early and release the source. No further chunks are produced."""
        self._finished = True
        await self._release()

    async def __aenter__(self) -> "ChunkStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def collect(self) -> GenerateResponse:
        """Drain the stream into a single ``GenerateResponse``.

        Tool-call fragments are assembled by index. Raises the terminal
        error if the stream failed.
        """
        text: list[str] = []
        calls: dict[int, dict[str, Any]] = {}
        finish_reason = FinishReason.STOP

        async with self:
            async for chunk in self:
                if chunk.error is not None:
                    raise chunk.error
                text.append(chunk.delta.text)
                fragment = chunk.delta.tool_call
                if fragment is not None:
                    entry = calls.setdefault(
                        fragment.index, {"id": None, "name": None, "arguments": []}
                    )
                    entry["id"] = fragment.id or entry["id"]
                    entry["name"] = fragment.name or entry["name"]
                    entry["arguments"].append(fragment.arguments)
                if chunk.is_final and chunk.finish_reason is not None:
                    finish_reason = chunk.finish_reason

        tool_calls = tuple(
            _assemble_tool_call(index, calls[index]) for index in sorted(calls)
        )
        if tool_calls and finish_reason == FinishReason.STOP:
            finish_reason = FinishReason.TOOL_CALL

        return GenerateResponse(
            choices=(Message.assistant("".join(text), tool_calls),),
            finish_reason=finish_reason,
            usage=self._usage,
            tool_calls=tool_calls,
            model=self._model,
            latency_ms=1000 * (monotonic() - self._started),
        )

    async def _pull(self) -> Any:
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            return _EXHAUSTED

    def _emit(self, delta: StreamDelta) -> StreamChunk:
        chunk = StreamChunk(index=self._index, delta=delta)
        self._index += 1
        return chunk

    async def _finish(
        self,
        delta: StreamDelta,
        finish_reason: FinishReason,
        error: LLMError | None = None,
    ) -> StreamChunk:
        self._finished = True
        await self._release()
        chunk = StreamChunk(
            index=self._index,
            delta=delta,
            is_final=True,
            finish_reason=finish_reason,
            error=error,
            usage=self._usage,
        )
        self._index += 1
        logger.debug(
            "Stream finished: provider=%s, chunks=%d, finish=%s",
            self._provider,
            self._index,
            finish_reason.value,
        )
        return chunk

    async def _fail(self, error: LLMError) -> StreamChunk:
        logger.debug("Stream failed: %s", error)
        return await self._finish(StreamDelta(), FinishReason.ERROR, error)

    async def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            # The stream outcome is already decided; a failing close must not mask it
            logger.warning("Error while closing stream source", exc_info=True)


def _assemble_tool_call(index: int, entry: dict[str, Any]) -> ToolCall:
    raw_arguments = "".join(entry["arguments"])
    try:
        arguments = json.loads(raw_arguments) if raw_arguments else {}
    except json.JSONDecodeError:
        logger.warning("Failed to parse tool call arguments: %s", raw_arguments)
        arguments = {}
    return ToolCall(
        id=entry["id"] or f"call_{index}",
        name=entry["name"] or "",
        arguments=arguments if isinstance(arguments, dict) else {},
    )
