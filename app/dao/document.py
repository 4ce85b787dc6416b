"""
Payment order document Data Access Object.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.document import PaymentOrderDocument


class DocumentDAO(BaseDAO[PaymentOrderDocument]):
    """Data Access Object for PaymentOrderDocument model."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentOrderDocument, session)

    async def list_for_order(self, payment_order_id: int) -> List[PaymentOrderDocument]:
        """Documents of an order, oldest first."""
        result = await self.session.execute(
            select(PaymentOrderDocument)
            .where(PaymentOrderDocument.payment_order_id == payment_order_id)
            .order_by(PaymentOrderDocument.created_at.asc(), PaymentOrderDocument.id.asc())
        )
        return list(result.scalars().all())

    async def get_by_label(
        self, payment_order_id: int, requirement_label: str
    ) -> Optional[PaymentOrderDocument]:
        result = await self.session.execute(
            select(PaymentOrderDocument).where(
                PaymentOrderDocument.payment_order_id == payment_order_id,
                PaymentOrderDocument.requirement_label == requirement_label,
            )
        )
        return result.scalar_one_or_none()

    async def remove(self, document: PaymentOrderDocument) -> None:
        """
        Delete a loaded document row and flush immediately.

        WHY: A replacement inserts a row with the same (order, label);
        the old row must be gone before that INSERT reaches the database.
        """
        await self.session.delete(document)
        await self.session.flush()
