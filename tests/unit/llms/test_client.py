# tests/unit/llms/test_client.py

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from polyllm.llms.base import (
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    Message,
    Provider,
    StreamDelta,
    Usage,
)
from polyllm.llms.client import Client
from polyllm.llms.context import CallContext
from polyllm.llms.errors import (
    ErrorKind,
    InternalError,
    InvalidRequestError,
    RateLimitError,
    RequestCancelledError,
)
from polyllm.providers.fake import FakeProvider


def _request() -> GenerateRequest:
    return GenerateRequest(model="m1", messages=[Message.user("hi")])


def _response(text: str) -> GenerateResponse:
    return GenerateResponse(
        choices=(Message.assistant(text),),
        finish_reason=FinishReason.STOP,
        usage=Usage(prompt_tokens=1, completion_tokens=1),
    )


class TestClientGenerate:
    @pytest.mark.asyncio
    async def test_returns_provider_response_unchanged(self) -> None:
        """Test the m1 / 'hi' -> 'hello' scenario."""
        expected = _response("hello")
        client = Client(FakeProvider([expected]))

        response = await client.generate(_request())

        assert response is expected
        assert response.message == Message.assistant("hello")
        assert response.finish_reason == FinishReason.STOP
        assert response.usage == Usage(prompt_tokens=1, completion_tokens=1)

    @pytest.mark.asyncio
    async def test_request_is_not_mutated(self) -> None:
        provider = FakeProvider([_response("hello")])
        request = _request()

        await Client(provider).generate(request)

        assert provider.requests == [request]
        assert request == _request()

    @pytest.mark.asyncio
    async def test_taxonomy_errors_propagate_unchanged(self) -> None:
        error = RateLimitError("slow down")
        client = Client(FakeProvider([error]))

        with pytest.raises(RateLimitError) as excinfo:
            await client.generate(_request())

        assert excinfo.value is error

    @pytest.mark.asyncio
    async def test_raw_exceptions_are_classified(self) -> None:
        provider = MagicMock()
        provider.name = "broken"
        provider.generate = AsyncMock(side_effect=RuntimeError("kaboom"))
        client = Client(provider)

        with pytest.raises(InternalError) as excinfo:
            await client.generate(_request())

        assert excinfo.value.kind == ErrorKind.INTERNAL
        assert excinfo.value.provider == "broken"
        assert isinstance(excinfo.value.raw, RuntimeError)

    @pytest.mark.asyncio
    async def test_cancelled_context_yields_cancelled(self) -> None:
        client = Client(FakeProvider(delay=10.0))
        ctx = CallContext()
        asyncio.get_running_loop().call_later(0.01, ctx.cancel)

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(client.generate(_request(), ctx), 1.0)

    @pytest.mark.asyncio
    async def test_deadline_yields_cancelled(self) -> None:
        client = Client(FakeProvider(delay=10.0))

        with pytest.raises(RequestCancelledError) as excinfo:
            await asyncio.wait_for(
                client.generate(_request(), CallContext(timeout=0.02)), 1.0
            )

        assert excinfo.value.kind == ErrorKind.CANCELLED


class TestClientStream:
    @pytest.mark.asyncio
    async def test_stream_delegates(self) -> None:
        provider = FakeProvider(
            streams=[[StreamDelta(text="hey"), StreamDelta(finish_reason=FinishReason.STOP)]]
        )
        client = Client(provider)

        chunks = [chunk async for chunk in client.stream(_request())]

        assert [c.text for c in chunks] == ["hey", ""]
        assert chunks[-1].is_final
        assert provider.stream_calls == 1

    @pytest.mark.asyncio
    async def test_stream_setup_exception_is_delivered_in_band(self) -> None:
        provider = MagicMock()
        provider.name = "broken"
        provider.stream = MagicMock(side_effect=RuntimeError("cannot connect"))
        client = Client(provider)

        stream = client.stream(_request())
        chunks = [chunk async for chunk in stream]

        assert len(chunks) == 1
        assert chunks[0].is_final
        assert chunks[0].error.kind == ErrorKind.INTERNAL


class TestProviderSwap:
    @pytest.mark.asyncio
    async def test_swapping_provider_changes_only_content(self) -> None:
        """Test that identical call sites work against different providers."""

        async def call_site(client: Client) -> tuple[str, list[str]]:
            response = await client.generate(_request())
            chunks = [c async for c in client.stream(_request())]
            return response.content, [c.text for c in chunks]

        provider_a = FakeProvider(
            [_response("from A")],
            streams=[[StreamDelta(text="A"), StreamDelta(finish_reason=FinishReason.STOP)]],
            name="a",
        )
        provider_b = FakeProvider(
            [_response("from B")],
            streams=[[StreamDelta(text="B"), StreamDelta(finish_reason=FinishReason.STOP)]],
            name="b",
        )

        result_a = await call_site(Client(provider_a))
        result_b = await call_site(Client(provider_b))

        assert result_a == ("from A", ["A", ""])
        assert result_b == ("from B", ["B", ""])
        assert (provider_a.generate_calls, provider_a.stream_calls) == (1, 1)
        assert (provider_b.generate_calls, provider_b.stream_calls) == (1, 1)

    def test_fake_provider_satisfies_contract(self) -> None:
        assert isinstance(FakeProvider(), Provider)


class TestClientHelpers:
    def test_request_uses_default_model(self) -> None:
        client = Client(FakeProvider(), default_model="gpt-4o")

        request = client.request([Message.user("hi")], temperature=0.2)

        assert request.model == "gpt-4o"
        assert request.temperature == 0.2

    def test_request_without_model_raises(self) -> None:
        with pytest.raises(InvalidRequestError):
            Client(FakeProvider()).request([Message.user("hi")])

    @pytest.mark.asyncio
    async def test_context_manager_closes_provider(self) -> None:
        provider = FakeProvider()

        async with Client(provider) as client:
            assert client.name == "fake"

        assert provider.closed


class TestClientConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_generate_cancels_only_its_own_call(self) -> None:
        """Test that one Client serves parallel callers with independent contexts."""
        client = Client(FakeProvider(delay=0.05))
        contexts = [CallContext(), CallContext(), CallContext()]
        asyncio.get_running_loop().call_later(0.01, contexts[1].cancel)

        results = await asyncio.wait_for(
            asyncio.gather(
                *(
                    client.generate(
                        GenerateRequest(model="m1", messages=[Message.user(f"caller {i}")]),
                        ctx,
                    )
                    for i, ctx in enumerate(contexts)
                ),
                return_exceptions=True,
            ),
            2.0,
        )

        assert results[0].content == "caller 0"
        assert isinstance(results[1], RequestCancelledError)
        assert results[2].content == "caller 2"

    @pytest.mark.asyncio
    async def test_parallel_streams_cancel_only_their_own_stream(self) -> None:
        provider = FakeProvider(delay=0.05)
        client = Client(provider)
        contexts = [CallContext(), CallContext(), CallContext()]
        asyncio.get_running_loop().call_later(0.01, contexts[0].cancel)

        async def consume(i: int, ctx: CallContext) -> list:
            request = GenerateRequest(model="m1", messages=[Message.user(f"stream {i}")])
            return [chunk async for chunk in client.stream(request, ctx)]

        results = await asyncio.wait_for(
            asyncio.gather(*(consume(i, ctx) for i, ctx in enumerate(contexts))), 2.0
        )

        assert results[0][-1].error.kind == ErrorKind.CANCELLED
        assert [c.text for c in results[1]] == ["stream 1", ""]
        assert [c.text for c in results[2]] == ["stream 2", ""]
        assert all(r[-1].is_final for r in results)
        assert provider.open_streams == 0
