# tests/unit/middleware/test_composition.py

from collections.abc import Callable

import pytest

from polyllm.llms.base import (
    GenerateRequest,
    GenerateResponse,
    Message,
    Provider,
)
from polyllm.llms.client import Client
from polyllm.llms.context import CallContext
from polyllm.llms.stream import ChunkStream
from polyllm.middleware.base import Middleware, ProviderWrapper, apply, chain, relay
from polyllm.providers.fake import FakeProvider


class _Recording(ProviderWrapper):
    """Appends '<label>:in' and '<label>:out' around each call."""

    def __init__(self, inner: Provider, label: str, log: list[str]) -> None:
        super().__init__(inner)
        self.label = label
        self.log = log

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        self.log.append(f"{self.label}:in")
        response = await self._inner.generate(request, ctx)
        self.log.append(f"{self.label}:out")
        return response

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        self.log.append(f"{self.label}:stream")
        return ChunkStream(
            relay(self._inner.stream(request, ctx)),
            ctx=ctx,
            provider=self.name,
            model=request.model,
        )


def recording(label: str, log: list[str]) -> Middleware:
    return lambda inner: _Recording(inner, label, log)


def _request() -> GenerateRequest:
    return GenerateRequest(model="m1", messages=[Message.user("hi")])


class TestComposition:
    @pytest.mark.asyncio
    async def test_first_middleware_is_outermost(self) -> None:
        log: list[str] = []
        provider = apply(
            FakeProvider(),
            [recording("a", log), recording("b", log), recording("c", log)],
        )

        await provider.generate(_request())

        assert log == ["a:in", "b:in", "c:in", "c:out", "b:out", "a:out"]

    @pytest.mark.asyncio
    async def test_chain_is_associative(self) -> None:
        async def run(build: Callable[[list[str]], Middleware]) -> list[str]:
            log: list[str] = []
            await Client(FakeProvider(), [build(log)]).generate(_request())
            return log

        left = await run(
            lambda log: chain(chain(recording("a", log), recording("b", log)), recording("c", log))
        )
        right = await run(
            lambda log: chain(recording("a", log), chain(recording("b", log), recording("c", log)))
        )
        flat = await run(
            lambda log: chain(recording("a", log), recording("b", log), recording("c", log))
        )

        assert left == right == flat
        assert left[:3] == ["a:in", "b:in", "c:in"]

    def test_empty_chain_is_identity(self) -> None:
        provider = FakeProvider()
        assert chain()(provider) is provider
        assert apply(provider, []) is provider

    @pytest.mark.asyncio
    async def test_wrapped_provider_keeps_contract(self) -> None:
        log: list[str] = []
        inner = FakeProvider(name="inner")
        client = Client(inner, [recording("a", log), recording("b", log)])

        assert isinstance(client.provider, Provider)
        assert client.name == "inner"

        chunks = [c async for c in client.stream(_request())]
        assert [c.index for c in chunks] == [0, 1]
        assert chunks[-1].is_final
        assert log == ["a:stream", "b:stream"]

        await client.aclose()
        assert inner.closed
