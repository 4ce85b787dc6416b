"""
Payment Order History Data Access Object (DAO).

WHAT: Data access layer for the append-only order timeline.

WHY: History is the audit trail reviewers rely on. This DAO provides:
- Append-only writes
- Canonical timeline reads (created_at, then id)
- Explicit refusal of updates and deletes

HOW: Does not extend BaseDAO so no generic update/delete path exists;
update/delete are defined only to raise HistoryImmutableError.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import HistoryImmutableError
from app.models.history import PaymentOrderHistory, HistoryAction
from app.models.payment_order import PaymentOrderStatus


class HistoryDAO:
    """
    Data Access Object for payment order history entries.

    Example:
        dao = HistoryDAO(session)
        await dao.create(order.id, HistoryAction.CREATED, user_id=user.id,
                         new_status=PaymentOrderStatus.CREATED)
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize HistoryDAO with database session.

        Args:
            session: Async database session
        """
        self.session = session

    async def create(
        self,
        payment_order_id: int,
        action: HistoryAction,
        user_id: Optional[int] = None,
        is_system_actor: bool = False,
        previous_status: Optional[PaymentOrderStatus] = None,
        new_status: Optional[PaymentOrderStatus] = None,
        comment: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrderHistory:
        """
        Append a history entry.

        Args:
            payment_order_id: Order the entry belongs to
            action: Entry kind
            user_id: Acting user (None for the system actor)
            is_system_actor: True for automatic transitions
            previous_status: Status before a transition
            new_status: Status after a transition or creation
            comment: Free text (reviewer comment, file name, ...)
            extra_data: Structured metadata

        Returns:
            The created entry
        """
        entry = PaymentOrderHistory(
            payment_order_id=payment_order_id,
            action=action,
            user_id=user_id,
            is_system_actor=is_system_actor,
            previous_status=previous_status,
            new_status=new_status,
            comment=comment,
            extra_data=extra_data,
        )
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry)
        return entry

    async def list_for_order(self, payment_order_id: int) -> List[PaymentOrderHistory]:
        """Entries of an order in timeline order."""
        result = await self.session.execute(
            select(PaymentOrderHistory)
            .where(PaymentOrderHistory.payment_order_id == payment_order_id)
            .order_by(PaymentOrderHistory.created_at.asc(), PaymentOrderHistory.id.asc())
        )
        return list(result.scalars().all())

    async def count_for_order(
        self, payment_order_id: int, action: Optional[HistoryAction] = None
    ) -> int:
        query = select(func.count(PaymentOrderHistory.id)).where(
            PaymentOrderHistory.payment_order_id == payment_order_id
        )
        if action is not None:
            query = query.where(PaymentOrderHistory.action == action)
        result = await self.session.execute(query)
        return int(result.scalar_one())

    async def update(self, *args: Any, **kwargs: Any) -> None:
        """History entries cannot be updated."""
        raise HistoryImmutableError()

    async def delete(self, *args: Any, **kwargs: Any) -> None:
        """History entries cannot be deleted."""
        raise HistoryImmutableError()
