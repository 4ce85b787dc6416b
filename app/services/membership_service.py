"""
Membership Service.

WHAT: Lists, adds, re-roles and removes organization members.

WHY: Membership decides who reviews payment orders. Changes follow the
role hierarchy (owner > admin > member):
- Only owners and admins manage members
- Nobody grants or touches a role above their own
- Admins cannot change or remove other admins
- The owner membership is never changed here
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from app.core.result import as_result
from app.dao.organization import MembershipDAO, OrganizationDAO
from app.dao.user import UserDAO
from app.db.unit_of_work import UnitOfWork
from app.models.organization import MembershipRole, Organization, OrganizationMembership
from app.models.user import User
from app.services.access_resolver import (
    AccessResolver,
    ensure_assignable_role,
    ensure_can_manage_members,
    ensure_can_modify_member,
    role_rank,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberView:
    membership: OrganizationMembership
    user: Optional[User] = None


async def _load_organization(session: AsyncSession, organization_id: int) -> Organization:
    organization = await OrganizationDAO(session).get_by_id(organization_id)
    if organization is None:
        raise ResourceNotFoundError(message="Organization not found", organization_id=organization_id)
    return organization


class MembershipService:
    """Organization membership management under the role hierarchy."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @as_result
    async def list_members(self, user_id: Optional[int], organization_id: int) -> List[MemberView]:
        """Members by rank (owner first); empty for non-members."""
        async with self.session_factory() as session:
            await _load_organization(session, organization_id)
            resolver = AccessResolver(session)
            user = await resolver.find_caller(user_id)
            if user is None or await resolver.organization_role(organization_id, user) is None:
                return []

            memberships = await MembershipDAO(session).list_for_organization(organization_id)
            users = await UserDAO(session).get_map(m.user_id for m in memberships)
            memberships.sort(key=lambda m: -role_rank(m.role))
            return [MemberView(m, users.get(m.user_id)) for m in memberships]

    @as_result
    async def add_member(
        self,
        user_id: Optional[int],
        organization_id: int,
        target_user_id: int,
        role: MembershipRole,
    ) -> MemberView:
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            await _load_organization(session, organization_id)
            resolver = AccessResolver(session)
            caller = await resolver.load_caller(user_id)
            actor_role = ensure_can_manage_members(
                await resolver.organization_role(organization_id, caller)
            )
            ensure_assignable_role(actor_role, role)

            membership_dao = MembershipDAO(session)
            if await membership_dao.get_membership(organization_id, target_user_id):
                raise ResourceAlreadyExistsError(
                    message="User is already a member of this organization",
                    user_id=target_user_id,
                )
            target = await UserDAO(session).get_by_id(target_user_id)
            if target is None:
                raise ResourceNotFoundError(message="Target user not found", user_id=target_user_id)

            membership = await membership_dao.create(
                organization_id=organization_id,
                user_id=target.id,
                role=role,
                invited_by_id=caller.id,
            )

        logger.info(
            f"User {target_user_id} added to organization {organization_id} as {role.value} "
            f"by user {caller.id}"
        )
        return MemberView(membership, target)

    @as_result
    async def update_member_role(
        self,
        user_id: Optional[int],
        organization_id: int,
        target_user_id: int,
        new_role: MembershipRole,
    ) -> MemberView:
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            await _load_organization(session, organization_id)
            resolver = AccessResolver(session)
            caller = await resolver.load_caller(user_id)
            actor_role = ensure_can_manage_members(
                await resolver.organization_role(organization_id, caller)
            )
            ensure_assignable_role(actor_role, new_role)

            membership = await self._target_membership(session, organization_id, target_user_id)
            ensure_can_modify_member(
                actor_role, membership.role, is_self=target_user_id == caller.id
            )

            previous_role = membership.role
            membership.role = new_role
            await session.flush()
            target = await UserDAO(session).get_by_id(target_user_id)

        logger.info(
            f"User {target_user_id} in organization {organization_id}: "
            f"{previous_role.value} -> {new_role.value} by user {caller.id}"
        )
        return MemberView(membership, target)

    @as_result
    async def remove_member(
        self, user_id: Optional[int], organization_id: int, target_user_id: int
    ) -> None:
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            await _load_organization(session, organization_id)
            resolver = AccessResolver(session)
            caller = await resolver.load_caller(user_id)
            actor_role = ensure_can_manage_members(
                await resolver.organization_role(organization_id, caller)
            )

            membership = await self._target_membership(session, organization_id, target_user_id)
            ensure_can_modify_member(
                actor_role, membership.role, is_self=target_user_id == caller.id
            )
            await MembershipDAO(session).delete(membership.id)

        logger.info(
            f"User {target_user_id} removed from organization {organization_id} by user {caller.id}"
        )

    @staticmethod
    async def _target_membership(
        session: AsyncSession, organization_id: int, target_user_id: int
    ) -> OrganizationMembership:
        membership = await MembershipDAO(session).get_membership(organization_id, target_user_id)
        if membership is None:
            raise ResourceNotFoundError(
                message="User is not a member of this organization",
                user_id=target_user_id,
            )
        return membership
