# src/polyllm/providers/_common.py

"""Helpers shared by the SDK-backed providers."""

from collections.abc import Awaitable
from typing import Any, TypeVar

from polyllm.llms.context import CallContext

T = TypeVar("T")


async def run_in_context(ctx: CallContext | None, aw: Awaitable[T]) -> T:
    """Await ``aw`` under ``ctx`` when one is given."""
    if ctx is None:
        return await aw
    return await ctx.run(aw)


def retry_after(exc: Any) -> float | None:
    """Seconds from a rate-limit response's ``retry-after`` header, if any."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
