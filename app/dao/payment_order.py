"""
Payment order Data Access Object.

WHAT: Queries for payment orders, including the locked read used by
every state-changing operation.

WHY: Creator scoping for allow-listed callers is applied in the query
itself so rows of other creators never leave the database.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.payment_order import PaymentOrder, PaymentOrderStatus
from app.models.profile import PaymentOrderProfile


class PaymentOrderDAO(BaseDAO[PaymentOrder]):
    """Data Access Object for PaymentOrder model."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentOrder, session)

    async def get_for_update(self, order_id: int) -> Optional[PaymentOrder]:
        """
        Read the order inside a unit of work, locking the row.

        WHY: populate_existing guarantees a retry sees the committed
        state instead of a stale identity-map copy. Backends without
        row locks ignore FOR UPDATE; version_id still catches conflicts.
        """
        result = await self.session.execute(
            select(PaymentOrder)
            .where(PaymentOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_profile(
        self,
        profile_id: int,
        created_by_id: Optional[int] = None,
        status: Optional[PaymentOrderStatus] = None,
    ) -> List[PaymentOrder]:
        """
        List a profile's orders, newest first.

        Args:
            profile_id: Profile to list
            created_by_id: Restrict to one creator (scoped callers)
            status: Optional status filter
        """
        query = select(PaymentOrder).where(PaymentOrder.profile_id == profile_id)
        if created_by_id is not None:
            query = query.where(PaymentOrder.created_by_id == created_by_id)
        if status is not None:
            query = query.where(PaymentOrder.status == status)
        query = query.order_by(PaymentOrder.created_at.desc(), PaymentOrder.id.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_created_since(self, organization_id: int, since: datetime) -> int:
        """Count orders created across an organization's profiles since a moment."""
        result = await self.session.execute(
            select(func.count(PaymentOrder.id))
            .join(PaymentOrderProfile, PaymentOrderProfile.id == PaymentOrder.profile_id)
            .where(
                PaymentOrderProfile.organization_id == organization_id,
                PaymentOrder.created_at >= since,
            )
        )
        return int(result.scalar_one())
