# src/polyllm/providers/fake.py

"""In-memory reference provider.

Scripted, deterministic and network-free. Used by the test-suite and handy
for application tests: hand it canned responses (or exceptions) and it
plays them back in order, repeating the last one once the script runs out.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from time import monotonic

from polyllm.llms.base import (
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    Message,
    Role,
    StreamDelta,
    Usage,
)
from polyllm.llms.config import ProviderConfig
from polyllm.llms.context import CallContext
from polyllm.llms.errors import classify_error
from polyllm.llms.stream import ChunkStream

logger = logging.getLogger(__name__)

StreamScript = Sequence[StreamDelta | Exception] | Exception


class FakeProvider:
    """Provider that replays scripted outcomes.

    Args:
        responses: Outcomes for ``generate`` calls, in order. Exceptions are
            raised (classified), responses returned as-is. When empty, the
            provider echoes the last user message.
        streams: Scripts for ``stream`` calls. Each script is a list of
            deltas (exceptions in it fail mid-stream) or a single exception
            (fails before the first chunk).
        delay: Seconds to wait before each response and between deltas.
    """

    def __init__(
        self,
        responses: Sequence[GenerateResponse | Exception] = (),
        *,
        streams: Sequence[StreamScript] = (),
        delay: float = 0.0,
        name: str = "fake",
        config: ProviderConfig | None = None,
    ) -> None:
        self.name = name
        self._responses = list(responses)
        self._streams = list(streams)
        self._delay = delay
        self._config = config or ProviderConfig()
        self.generate_calls = 0
        self.stream_calls = 0
        self.requests: list[GenerateRequest] = []
        self.open_streams = 0
        self.closed = False

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        self.generate_calls += 1
        self.requests.append(request)
        start = monotonic()
        outcome = _next(self._responses, self.generate_calls)

        await self._wait(ctx)
        if isinstance(outcome, Exception):
            raise classify_error(outcome, self.name)
        if outcome is None:
            return self._echo(request, 1000 * (monotonic() - start))
        return outcome

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        self.stream_calls += 1
        self.requests.append(request)
        script = _next(self._streams, self.stream_calls)
        if script is None:
            script = [
                StreamDelta(text=_last_user_text(request)),
                StreamDelta(finish_reason=FinishReason.STOP),
            ]
        return ChunkStream(
            self._play(script, ctx),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )

    async def aclose(self) -> None:
        self.closed = True

    async def _play(
        self, script: StreamScript, ctx: CallContext | None
    ) -> AsyncIterator[StreamDelta]:
        self.open_streams += 1
        try:
            if isinstance(script, Exception):
                await self._wait(ctx)
                raise classify_error(script, self.name)
            for item in script:
                await self._wait(ctx)
                if isinstance(item, Exception):
                    raise classify_error(item, self.name)
                yield item
        finally:
            self.open_streams -= 1

    async def _wait(self, ctx: CallContext | None) -> None:
        if ctx is not None:
            ctx.check()
        if self._delay <= 0:
            return
        if ctx is None:
            await asyncio.sleep(self._delay)
        else:
            await ctx.run(asyncio.sleep(self._delay))

    def _echo(self, request: GenerateRequest, latency_ms: float) -> GenerateResponse:
        text = _last_user_text(request)
        return GenerateResponse(
            choices=(Message.assistant(text),),
            finish_reason=FinishReason.STOP,
            usage=Usage(
                prompt_tokens=sum(len(m.text.split()) for m in request.messages),
                completion_tokens=len(text.split()),
            ),
            model=request.model,
            latency_ms=latency_ms,
        )


def _next(script: list, call_number: int):
    if not script:
        return None
    return script[min(call_number, len(script)) - 1]


def _last_user_text(request: GenerateRequest) -> str:
    for message in reversed(request.messages):
        if message.role == Role.USER:
            return message.text
    return ""
