# src/polyllm/llms/context.py

"""Per-call cancellation handle with an optional deadline.

A ``CallContext`` is passed alongside a request. Awaiting through
``ctx.run(...)`` makes the await interruptible: when the context is
cancelled, or its deadline passes, the awaiting task is cancelled in place
(the same mechanism ``asyncio.timeout`` uses), the awaited work unwinds and
releases its resources, and ``RequestCancelledError`` is raised instead.

Cancellation of the caller's own task is left alone and propagates as
``asyncio.CancelledError``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterator
from time import monotonic
from typing import TypeVar

from .errors import RequestCancelledError

T = TypeVar("T")


class _Scope:
    """One in-flight ``run`` on one task."""

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.tripped = False

    def trip(self) -> None:
        if not self.tripped:
            self.tripped = True
            self.task.cancel()


class CallContext:
    """Cancellation handle and deadline for one call or stream.

    Children derived with ``with_timeout`` see their parent's cancellation
    and never outlive the parent's deadline.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        deadline: float | None = None,
        parent: CallContext | None = None,
    ) -> None:
        if timeout is not None:
            if timeout <= 0:
                raise ValueError("timeout must be > 0")
            own = monotonic() + timeout
            deadline = own if deadline is None else min(deadline, own)
        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self._parent = parent
        self._deadline = deadline
        self._cancelled = False
        self._scopes: set[_Scope] = set()

    @property
    def deadline(self) -> float | None:
        """Absolute deadline on the ``time.monotonic`` clock."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return any(ctx._cancelled for ctx in self._lineage())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - monotonic())

    def with_timeout(self, timeout: float) -> CallContext:
        """Child context whose deadline is the stricter of ours and ``now + timeout``."""
        return CallContext(timeout=timeout, parent=self)

    def cancel(self) -> None:
        """Cancel this context and every child; interrupts in-flight ``run`` calls."""
        self._cancelled = True
        for scope in list(self._scopes):
            scope.trip()

    def check(self) -> None:
        """Raise ``RequestCancelledError`` if the context is already done."""
        if self.done:
            raise self._error()

    async def run(self, aw: Awaitable[T]) -> T:
        """Await ``aw``, interrupting it on cancellation or deadline."""
        if self.done:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise self._error()
        task = asyncio.current_task()
        if task is None:
            raise RuntimeError("CallContext.run requires a running task")

        scope = _Scope(task)
        lineage = list(self._lineage())
        for ctx in lineage:
            ctx._scopes.add(scope)
        handle = None
        remaining = self.remaining()
        if remaining is not None:
            handle = asyncio.get_running_loop().call_later(remaining, scope.trip)
        cancelling = task.cancelling()
        try:
            return await aw
        except asyncio.CancelledError:
            if scope.tripped and task.uncancel() <= cancelling:
                raise self._error() from None
            raise
        finally:
            if handle is not None:
                handle.cancel()
            for ctx in lineage:
                ctx._scopes.discard(scope)

    def _lineage(self) -> Iterator[CallContext]:
        ctx: CallContext | None = self
        while ctx is not None:
            yield ctx
            ctx = ctx._parent

    def _error(self) -> RequestCancelledError:
        if self.cancelled:
            return RequestCancelledError("Call cancelled")
        return RequestCancelledError("Call deadline exceeded")

    def __repr__(self) -> str:
        return f"CallContext(deadline={self._deadline!r}, cancelled={self.cancelled})"


def background() -> CallContext:
    """A context that is never cancelled and has no deadline."""
    return CallContext()
