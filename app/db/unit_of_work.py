"""
Unit of work for order-scoped mutations.

WHAT: One transaction per state-changing operation, serialized per order.

WHY: An order's status, its history entry and its outbox event must
become visible together or not at all. Two writers on the same order
(an admin approving while the creator cancels) must not both win.

HOW:
1. An in-process asyncio lock keyed by order id serializes writers
   inside one worker.
2. The order row is read with SELECT ... FOR UPDATE where the backend
   supports it, and PaymentOrder.version_id makes any stale write fail
   with StaleDataError across workers.
3. retry_on_conflict re-runs the whole operation (re-read, re-validate,
   re-apply) a bounded number of times, then reports InvalidState.
4. Callbacks registered with after_commit run only once the commit
   succeeded; their failures are logged and swallowed.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Hashable, List, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import InvalidStateTransitionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

AfterCommit = Callable[[], Awaitable[Any]]


class OrderLockRegistry:
    """
    Keyed asyncio locks: order ids, or ("organization", id) for creation.

    Locks are created on demand and dropped once nobody holds or waits
    for them, so the registry does not grow with the number of orders.
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


order_locks = OrderLockRegistry()


class UnitOfWork:
    """
    Async context manager wrapping one transaction.

    Example:
        async with UnitOfWork(session_factory, order_id=order.id) as uow:
            order = await PaymentOrderDAO(uow.session).get_for_update(order.id)
            ...
            uow.after_commit(lambda: dispatcher.publish(event_ids))

    Pass organization_id instead of order_id to serialize writers that
    count or create orders across an organization.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        order_id: Optional[int] = None,
        locks: Optional[OrderLockRegistry] = None,
        organization_id: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._lock_key: Optional[Hashable] = order_id
        if order_id is None and organization_id is not None:
            self._lock_key = ("organization", organization_id)
        self._locks = locks if locks is not None else order_locks
        self._lock_cm = None
        self._after_commit: List[AfterCommit] = []
        self.session: Optional[AsyncSession] = None

    def after_commit(self, callback: AfterCommit) -> None:
        """Register a coroutine factory to run after a successful commit."""
        self._after_commit.append(callback)

    async def __aenter__(self) -> "UnitOfWork":
        if self._lock_key is not None:
            self._lock_cm = self._locks.hold(self._lock_key)
            await self._lock_cm.__aenter__()
        self.session = self._session_factory()
        await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        committed = False
        try:
            if exc_type is None:
                try:
                    await self.session.commit()
                    committed = True
                except Exception:
                    await self.session.rollback()
                    raise
            else:
                await self.session.rollback()
        finally:
            await self.session.close()
            if self._lock_cm is not None:
                await self._lock_cm.__aexit__(None, None, None)
                self._lock_cm = None

        if committed:
            await self._run_after_commit()
        return False

    async def _run_after_commit(self) -> None:
        for callback in self._after_commit:
            try:
                await callback()
            except Exception as e:
                logger.error(f"Post-commit side effect failed: {e}", exc_info=True)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    order_id: Optional[int] = None,
) -> T:
    """
    Run ``operation`` again after a concurrent-write conflict.

    Args:
        operation: Zero-argument coroutine factory performing a full unit of work
        attempts: Extra attempts after the first (default TRANSITION_RETRY_ATTEMPTS)
        order_id: Used in log messages and error context

    Raises:
        InvalidStateTransitionError: If the operation still conflicts after retries
    """
    retries = settings.TRANSITION_RETRY_ATTEMPTS if attempts is None else attempts
    attempt = 0
    while True:
        try:
            return await operation()
        except StaleDataError as e:
            if attempt >= retries:
                logger.info(f"Order {order_id} still conflicting after {attempt + 1} attempts")
                raise InvalidStateTransitionError(
                    message="The order was modified concurrently; reload and try again",
                    order_id=order_id,
                ) from e
            attempt += 1
            logger.warning(f"Concurrent update on order {order_id}, retrying (attempt {attempt})")
