# src/polyllm/llms/client.py

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from polyllm.middleware.base import Middleware, apply

from .base import GenerateRequest, GenerateResponse, Message, Provider, StreamDelta
from .context import CallContext
from .errors import InvalidRequestError, LLMError, classify_error
from .stream import ChunkStream

logger = logging.getLogger(__name__)


class Client:
    """Single entry point for applications.

    Binds exactly one provider, wrapped by the caller's middleware (first
    listed is outermost). ``generate`` and ``stream`` mirror the provider
    contract, so swapping providers never touches call sites.
    """

    def __init__(
        self,
        provider: Provider,
        middleware: Sequence[Middleware] = (),
        *,
        default_model: str | None = None,
    ) -> None:
        self._provider = apply(provider, middleware)
        self._default_model = default_model
        logger.info(
            "Initialized Client with provider=%s, middleware=%d",
            provider.name,
            len(middleware),
        )

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def name(self) -> str:
        return self._provider.name

    async def generate(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> GenerateResponse:
        try:
            return await self._provider.generate(request, ctx)
        except LLMError:
            raise
        except Exception as exc:
            raise classify_error(exc, self._provider.name) from exc

    def stream(
        self, request: GenerateRequest, ctx: CallContext | None = None
    ) -> ChunkStream:
        try:
            return self._provider.stream(request, ctx)
        except Exception as exc:
            # Setup failures still surface in-band as the terminal chunk
            return ChunkStream(
                _failing(classify_error(exc, self._provider.name)),
                ctx=ctx,
                provider=self._provider.name,
                model=request.model,
            )

    def request(
        self, messages: Sequence[Message], model: str | None = None, **params: Any
    ) -> GenerateRequest:
        """Build a request, defaulting ``model`` to the client's default model."""
        model = model or self._default_model
        if not model:
            raise InvalidRequestError("No model given and client has no default_model")
        return GenerateRequest(model=model, messages=tuple(messages), **params)

    async def aclose(self) -> None:
        await self._provider.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


async def _failing(error: LLMError) -> AsyncIterator[StreamDelta]:
    raise error
    yield  # pragma: no cover
