# src/polyllm/middleware/base.py

"""Middleware composition.

A middleware is any callable that takes a ``Provider`` and returns a
``Provider`` wrapping it. Composition is explicit: the first middleware in
a list is the outermost wrapper, so it sees the call first and the result
last.
"""

from collections.abc import AsyncIterator, Callable, Sequence
from functools import reduce

from polyllm.llms.base import Provider, StreamDelta
from polyllm.llms.stream import ChunkStream

Middleware = Callable[[Provider], Provider]


def apply(provider: Provider, middleware: Sequence[Middleware]) -> Provider:
    """Wrap ``provider`` so that ``middleware[0]`` is the outermost layer."""
    for mw in reversed(middleware):
        provider = mw(provider)
    return provider


def chain(*middleware: Middleware) -> Middleware:
    """Compose middleware into one; ``chain(a, chain(b, c)) == chain(chain(a, b), c)``."""

    def _compose(outer: Middleware, inner: Middleware) -> Middleware:
        return lambda provider: outer(inner(provider))

    if not middleware:
        return lambda provider: provider
    return reduce(_compose, middleware)


class ProviderWrapper:
    """Base for contract-preserving wrappers.

    Holds the inner provider and delegates naming and shutdown to it.
    """

    def __init__(self, inner: Provider) -> None:
        self._inner = inner

    @property
    def inner(self) -> Provider:
        return self._inner

    @property
    def name(self) -> str:
        return self._inner.name

    async def aclose(self) -> None:
        await self._inner.aclose()


async def relay(stream: ChunkStream) -> AsyncIterator[StreamDelta]:
    """Re-emit an inner stream's deltas so an outer ``ChunkStream`` can wrap them.

    A terminal error chunk is raised, which the outer stream turns back
    into its own terminal error chunk.
    """
    async with stream:
        async for chunk in stream:
            if chunk.error is not None:
                raise chunk.error
            yield chunk.delta
