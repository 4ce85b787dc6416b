"""
Organization and membership Data Access Objects.

WHY: Membership lookups drive every access decision, so they are kept
in one place with the (organization, user) index they rely on.
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.organization import Organization, OrganizationMembership, MembershipRole


class OrganizationDAO(BaseDAO[Organization]):
    """Data Access Object for Organization model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Organization, session)

    async def lock_for_update(self, organization_id: int) -> Optional[Organization]:
        """
        Read the organization with a row lock.

        WHY: Creations across workers must count the monthly quota one at
        a time; the lock is held until the caller's transaction ends.
        """
        result = await self.session.execute(
            select(Organization).where(Organization.id == organization_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def create_with_owner(self, name: str, slug: str, owner_id: int) -> Organization:
        """
        Create an organization and its single OWNER membership together.

        WHY: An organization must never exist without exactly one owner
        membership; both rows are flushed in the caller's transaction.
        """
        org = await self.create(name=name, slug=slug, owner_id=owner_id)
        self.session.add(
            OrganizationMembership(
                organization_id=org.id,
                user_id=owner_id,
                role=MembershipRole.OWNER,
            )
        )
        await self.session.flush()
        return org


class MembershipDAO(BaseDAO[OrganizationMembership]):
    """Data Access Object for OrganizationMembership model."""

    def __init__(self, session: AsyncSession):
        super().__init__(OrganizationMembership, session)

    async def get_membership(
        self, organization_id: int, user_id: int
    ) -> Optional[OrganizationMembership]:
        result = await self.session.execute(
            select(OrganizationMembership).where(
                OrganizationMembership.organization_id == organization_id,
                OrganizationMembership.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_organization(self, organization_id: int) -> List[OrganizationMembership]:
        result = await self.session.execute(
            select(OrganizationMembership)
            .where(OrganizationMembership.organization_id == organization_id)
            .order_by(OrganizationMembership.joined_at.asc(), OrganizationMembership.id.asc())
        )
        return list(result.scalars().all())
