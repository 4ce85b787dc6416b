"""
Unit of Work Tests.

WHY: The unit of work is what makes a status change, its history entry
and its event atomic, and what keeps two writers on one order apart.
"""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import InvalidStateTransitionError
from app.db.unit_of_work import OrderLockRegistry, UnitOfWork, retry_on_conflict
from app.models.user import User


class TestOrderLockRegistry:
    @pytest.mark.asyncio
    async def test_serializes_same_order(self):
        registry = OrderLockRegistry()
        events = []

        async def worker(name):
            async with registry.hold(1):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_locks_are_released(self):
        registry = OrderLockRegistry()
        async with registry.hold(1):
            async with registry.hold(2):
                assert len(registry) == 2
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_released_after_error(self):
        registry = OrderLockRegistry()
        with pytest.raises(RuntimeError):
            async with registry.hold(1):
                raise RuntimeError("boom")
        assert len(registry) == 0


class TestUnitOfWork:
    @pytest.mark.asyncio
    async def test_commits_and_runs_callbacks(self, session_factory):
        calls = []

        async def callback():
            calls.append("after")

        async with UnitOfWork(session_factory) as uow:
            uow.session.add(User(name="Ada", email="ada@example.com"))
            uow.after_commit(callback)
            assert calls == []

        assert calls == ["after"]
        async with session_factory() as session:
            users = (await session.execute(select(User))).scalars().all()
        assert [u.email for u in users] == ["ada@example.com"]

    @pytest.mark.asyncio
    async def test_rolls_back_and_skips_callbacks(self, session_factory):
        """
        Test that a failed operation leaves no rows and sends nothing.

        WHY: Notifications for a change that never committed would lie.
        """
        calls = []

        async def callback():
            calls.append("after")

        with pytest.raises(ValueError):
            async with UnitOfWork(session_factory) as uow:
                uow.session.add(User(name="Ada", email="ada@example.com"))
                await uow.session.flush()
                uow.after_commit(callback)
                raise ValueError("validation failed late")

        assert calls == []
        async with session_factory() as session:
            assert (await session.execute(select(User))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_callback_failure_is_swallowed(self, session_factory):
        calls = []

        async def broken():
            raise RuntimeError("storage down")

        async def working():
            calls.append("ran")

        async with UnitOfWork(session_factory) as uow:
            uow.after_commit(broken)
            uow.after_commit(working)

        assert calls == ["ran"]

    @pytest.mark.asyncio
    async def test_holds_order_lock(self, session_factory):
        registry = OrderLockRegistry()
        async with UnitOfWork(session_factory, order_id=9, locks=registry):
            assert len(registry) == 1
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_organization_lock_serializes_units(self, session_factory):
        registry = OrderLockRegistry()
        order = []

        async def work(name):
            async with UnitOfWork(session_factory, organization_id=3, locks=registry):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(work("a"), work("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]
        assert len(registry) == 0


class TestRetryOnConflict:
    @pytest.mark.asyncio
    async def test_retries_once_then_succeeds(self):
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) == 1:
                raise StaleDataError("version mismatch")
            return "ok"

        assert await retry_on_conflict(operation, attempts=1, order_id=3) == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_reports_invalid_state_when_exhausted(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(InvalidStateTransitionError):
            await retry_on_conflict(operation, attempts=1, order_id=3)
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await retry_on_conflict(operation, attempts=3)
        assert len(attempts) == 1
