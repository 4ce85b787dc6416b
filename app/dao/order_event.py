"""
Order event outbox Data Access Object.

WHY: The dispatcher and the redelivery job share these queries so
delivery state transitions (pending -> delivered / failed) live in one place.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.base import utc_now
from app.models.order_event import OrderEvent, OrderEventStatus, OrderEventType


class OrderEventDAO(BaseDAO[OrderEvent]):
    """Data Access Object for OrderEvent model."""

    def __init__(self, session: AsyncSession):
        super().__init__(OrderEvent, session)

    async def record(
        self,
        payment_order_id: int,
        event_type: OrderEventType,
        payload: Dict[str, Any],
    ) -> OrderEvent:
        """Write a pending event in the caller's transaction."""
        return await self.create(
            payment_order_id=payment_order_id,
            event_type=event_type,
            payload=payload,
            status=OrderEventStatus.PENDING,
            attempts=0,
        )

    async def list_for_order(self, payment_order_id: int) -> List[OrderEvent]:
        result = await self.session.execute(
            select(OrderEvent)
            .where(OrderEvent.payment_order_id == payment_order_id)
            .order_by(OrderEvent.id.asc())
        )
        return list(result.scalars().all())

    async def list_undelivered(
        self,
        max_attempts: int,
        pending_before: datetime,
        limit: int = 100,
    ) -> List[OrderEvent]:
        """
        Events the redelivery job should retry.

        Pending events newer than ``pending_before`` are skipped because
        their post-commit dispatch is probably still running.
        """
        result = await self.session.execute(
            select(OrderEvent)
            .where(
                OrderEvent.attempts < max_attempts,
                or_(
                    OrderEvent.status == OrderEventStatus.FAILED,
                    and_(
                        OrderEvent.status == OrderEventStatus.PENDING,
                        OrderEvent.created_at < pending_before,
                    ),
                ),
            )
            .order_by(OrderEvent.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def mark_delivered(self, event: OrderEvent) -> None:
        event.status = OrderEventStatus.DELIVERED
        event.attempts += 1
        event.delivered_at = utc_now()
        event.last_error = None

    def mark_failed(self, event: OrderEvent, error: Optional[str]) -> None:
        event.status = OrderEventStatus.FAILED
        event.attempts += 1
        event.last_error = (error or "unknown error")[:2000]
