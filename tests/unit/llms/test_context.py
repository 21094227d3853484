# tests/unit/llms/test_context.py

import asyncio
from time import monotonic

import pytest

from polyllm.llms.context import CallContext, background
from polyllm.llms.errors import RequestCancelledError


class TestCallContext:
    def test_background_is_never_done(self) -> None:
        ctx = background()
        assert ctx.deadline is None
        assert ctx.remaining() is None
        assert not ctx.done

    def test_timeout_sets_deadline(self) -> None:
        before = monotonic()
        ctx = CallContext(timeout=10.0)
        assert ctx.deadline is not None
        assert before + 10.0 <= ctx.deadline <= monotonic() + 10.0
        assert 0 < ctx.remaining() <= 10.0

    def test_invalid_timeout(self) -> None:
        with pytest.raises(ValueError):
            CallContext(timeout=0)

    def test_child_takes_stricter_deadline(self) -> None:
        parent = CallContext(timeout=1.0)
        loose = parent.with_timeout(60.0)
        strict = parent.with_timeout(0.1)

        assert loose.deadline == parent.deadline
        assert strict.deadline < parent.deadline

    def test_cancel_propagates_to_children_only(self) -> None:
        parent = CallContext()
        child = parent.with_timeout(60.0)

        child.cancel()
        assert child.cancelled
        assert not parent.cancelled

        other = parent.with_timeout(60.0)
        parent.cancel()
        assert other.cancelled

    def test_check_raises_when_done(self) -> None:
        ctx = CallContext()
        ctx.check()
        ctx.cancel()
        with pytest.raises(RequestCancelledError, match="cancelled"):
            ctx.check()

    @pytest.mark.asyncio
    async def test_run_returns_result(self) -> None:
        ctx = CallContext(timeout=5.0)

        async def work() -> int:
            await asyncio.sleep(0)
            return 42

        assert await ctx.run(work()) == 42

    @pytest.mark.asyncio
    async def test_run_interrupted_by_cancel(self) -> None:
        ctx = CallContext()
        released = asyncio.Event()

        async def work() -> None:
            try:
                await asyncio.sleep(10)
            finally:
                released.set()

        asyncio.get_running_loop().call_later(0.01, ctx.cancel)
        start = monotonic()
        with pytest.raises(RequestCancelledError):
            await ctx.run(work())

        assert monotonic() - start < 1.0
        assert released.is_set()

    @pytest.mark.asyncio
    async def test_run_interrupted_by_deadline(self) -> None:
        ctx = CallContext(timeout=0.02)

        with pytest.raises(RequestCancelledError, match="deadline"):
            await ctx.run(asyncio.sleep(10))

    @pytest.mark.asyncio
    async def test_parent_cancel_interrupts_child_run(self) -> None:
        parent = CallContext()
        child = parent.with_timeout(60.0)

        asyncio.get_running_loop().call_later(0.01, parent.cancel)
        with pytest.raises(RequestCancelledError):
            await child.run(asyncio.sleep(10))

    @pytest.mark.asyncio
    async def test_run_on_done_context_does_not_start_work(self) -> None:
        ctx = CallContext()
        ctx.cancel()
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        with pytest.raises(RequestCancelledError):
            await ctx.run(work())
        assert not started

    @pytest.mark.asyncio
    async def test_outer_task_cancellation_is_not_converted(self) -> None:
        ctx = CallContext(timeout=60.0)
        task = asyncio.create_task(ctx.run(asyncio.sleep(10)))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_task_usable_after_interrupted_run(self) -> None:
        ctx = CallContext(timeout=0.01)
        with pytest.raises(RequestCancelledError):
            await ctx.run(asyncio.sleep(10))

        # The calling task must not carry a stale cancellation
        await asyncio.sleep(0.01)
        assert asyncio.current_task().cancelling() == 0
