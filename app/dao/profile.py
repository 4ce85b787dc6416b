"""
Payment order profile and tag Data Access Objects.
"""

from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.profile import PaymentOrderProfile
from app.models.base import utc_now
from app.models.tag import Tag
from app.models.payment_order import PaymentOrder


class ProfileDAO(BaseDAO[PaymentOrderProfile]):
    """Data Access Object for PaymentOrderProfile model."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentOrderProfile, session)

    async def get_for_update(self, profile_id: int) -> Optional[PaymentOrderProfile]:
        """Lock the profile row while its allow-list is rewritten."""
        result = await self.session.execute(
            select(PaymentOrderProfile)
            .where(PaymentOrderProfile.id == profile_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()


class TagDAO(BaseDAO[Tag]):
    """Data Access Object for Tag model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Tag, session)

    async def list_for_profile(self, profile_id: int) -> List[Tag]:
        result = await self.session.execute(
            select(Tag).where(Tag.profile_id == profile_id).order_by(Tag.name.asc())
        )
        return list(result.scalars().all())

    async def get_by_name(self, profile_id: int, name: str) -> Optional[Tag]:
        result = await self.session.execute(
            select(Tag).where(Tag.profile_id == profile_id, Tag.name == name)
        )
        return result.scalar_one_or_none()

    async def detach_from_orders(self, tag_id: int) -> int:
        """
        Clear tag_id on every order that references the tag.

        WHY: Orders outlive their tags; the foreign key's SET NULL is not
        enforced on every backend, so it is done explicitly. The version
        counter is bumped so in-flight writers on those orders re-read.
        """
        result = await self.session.execute(
            update(PaymentOrder)
            .where(PaymentOrder.tag_id == tag_id)
            .values(tag_id=None, version_id=PaymentOrder.version_id + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
