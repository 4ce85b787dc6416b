"""
Access Resolver.

WHAT: Computes what a caller may do with a payment order profile.

WHY: Every workflow operation asks the same three questions:
- Does the caller own the profile?
- Is the caller a member of the profile's organization, and with which role?
- Is the caller's email on the profile's allow-list?

The answers collapse into a single AccessTier so services never
re-derive permissions ad hoc.

HOW: ``AccessResolver.resolve`` loads the membership and builds an
immutable ``AccessContext``. The tier derivation and role-hierarchy
guards are pure functions so they can be tested without a database.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError, ValidationError
from app.dao.organization import MembershipDAO
from app.dao.profile import ProfileDAO
from app.dao.user import UserDAO
from app.models.organization import MembershipRole, ROLE_RANK
from app.models.payment_order import PaymentOrder
from app.models.profile import PaymentOrderProfile
from app.models.user import User


class AccessTier(str, enum.Enum):
    """
    Effective access of a caller on a profile, lowest first.

    - NONE: Sees nothing; reads return empty, writes are forbidden
    - SCOPED: Allow-listed only; sees and acts on own orders
    - MEMBER: Organization member; reads everything, creates orders
    - ELEVATED: Profile owner or organization owner/admin; reviews orders
    """

    NONE = "none"
    SCOPED = "scoped"
    MEMBER = "member"
    ELEVATED = "elevated"


def derive_tier(
    is_profile_owner: bool,
    membership_role: Optional[MembershipRole],
    is_whitelisted: bool,
) -> AccessTier:
    """Collapse the three access facts into one tier."""
    if is_profile_owner:
        return AccessTier.ELEVATED
    if membership_role is not None:
        if membership_role in (MembershipRole.OWNER, MembershipRole.ADMIN):
            return AccessTier.ELEVATED
        if membership_role == MembershipRole.MEMBER:
            return AccessTier.MEMBER
        raise ValueError(f"Unhandled membership role: {membership_role}")
    if is_whitelisted:
        return AccessTier.SCOPED
    return AccessTier.NONE


@dataclass(frozen=True)
class AccessContext:
    """
    Resolved access of one caller on one profile.

    Built once per operation and passed to the state machine and the
    document rules.
    """

    user_id: Optional[int]
    profile_id: int
    organization_id: int
    is_profile_owner: bool = False
    membership_role: Optional[MembershipRole] = None
    is_whitelisted: bool = False

    @property
    def tier(self) -> AccessTier:
        return derive_tier(self.is_profile_owner, self.membership_role, self.is_whitelisted)

    @property
    def has_access(self) -> bool:
        return self.tier != AccessTier.NONE

    @property
    def is_elevated(self) -> bool:
        """Profile owner or organization owner/admin."""
        return self.tier == AccessTier.ELEVATED

    @property
    def is_scoped(self) -> bool:
        return self.tier == AccessTier.SCOPED

    @property
    def role_label(self) -> Optional[str]:
        """
        Role reported by check_access.

        owner (profile owner), admin (organization owner/admin), member,
        whitelisted, or None.
        """
        if self.is_profile_owner:
            return "owner"
        if self.membership_role in (MembershipRole.OWNER, MembershipRole.ADMIN):
            return "admin"
        if self.membership_role == MembershipRole.MEMBER:
            return "member"
        if self.is_whitelisted:
            return "whitelisted"
        return None

    def is_creator(self, order: PaymentOrder) -> bool:
        return self.user_id is not None and order.created_by_id == self.user_id

    def can_view_order(self, order: PaymentOrder) -> bool:
        """Scoped callers only see their own orders."""
        tier = self.tier
        if tier == AccessTier.NONE:
            return False
        if tier == AccessTier.SCOPED:
            return self.is_creator(order)
        return True

    def creator_filter(self) -> Optional[int]:
        """Creator id list queries must filter on, or None for all rows."""
        return self.user_id if self.is_scoped else None


class AccessResolver:
    """
    Resolves AccessContext for a user and a profile.

    Example:
        access = await AccessResolver(session).resolve(user, profile)
        if not access.can_view_order(order):
            return None
    """

    def __init__(self, session: AsyncSession):
        self.membership_dao = MembershipDAO(session)
        self.profile_dao = ProfileDAO(session)
        self.user_dao = UserDAO(session)

    async def load_caller(self, user_id: Optional[int]) -> User:
        """
        Load the acting user for a mutation.

        Raises:
            AuthenticationError: Unknown or inactive user
        """
        user = await self.user_dao.get_by_id(user_id) if user_id is not None else None
        if user is None or not user.is_active:
            raise AuthenticationError(message="Caller could not be resolved to an active user")
        return user

    async def find_caller(self, user_id: Optional[int]) -> Optional[User]:
        """Acting user for reads; None resolves to NONE access."""
        if user_id is None:
            return None
        return await self.user_dao.get_by_id(user_id)

    async def resolve_for_order(self, user: Optional[User], order: PaymentOrder) -> AccessContext:
        profile = await self.profile_dao.get_by_id(order.profile_id)
        return await self.resolve(user, profile)

    async def resolve(self, user: Optional[User], profile: PaymentOrderProfile) -> AccessContext:
        """
        Build the access context for ``user`` on ``profile``.

        An unknown or inactive user resolves to NONE.
        """
        if user is None or not user.is_active:
            return AccessContext(
                user_id=None,
                profile_id=profile.id,
                organization_id=profile.organization_id,
            )

        membership = await self.membership_dao.get_membership(profile.organization_id, user.id)
        return AccessContext(
            user_id=user.id,
            profile_id=profile.id,
            organization_id=profile.organization_id,
            is_profile_owner=user.id == profile.owner_id,
            membership_role=membership.role if membership else None,
            is_whitelisted=profile.has_allowed_email(user.email),
        )

    async def organization_role(self, organization_id: int, user: User) -> Optional[MembershipRole]:
        membership = await self.membership_dao.get_membership(organization_id, user.id)
        return membership.role if membership else None


# ============================================================================
# Role hierarchy guards (membership mutations)
# ============================================================================


def role_rank(role: Optional[MembershipRole]) -> int:
    return ROLE_RANK[role] if role is not None else 0


def ensure_can_manage_members(actor_role: Optional[MembershipRole]) -> MembershipRole:
    """Only organization owners and admins may change memberships."""
    if role_rank(actor_role) < ROLE_RANK[MembershipRole.ADMIN]:
        raise AuthorizationError(
            message="Only organization owners and admins can manage members",
            actor_role=actor_role.value if actor_role else None,
        )
    return actor_role


def ensure_assignable_role(actor_role: MembershipRole, new_role: MembershipRole) -> None:
    """
    A role may be granted only if it is not OWNER and not above the actor's rank.

    Raises:
        ValidationError: If new_role is OWNER (ownership transfer is separate)
        AuthorizationError: If new_role outranks the actor
    """
    if new_role == MembershipRole.OWNER:
        raise ValidationError(
            message="The owner role cannot be assigned; use ownership transfer",
            role=new_role.value,
        )
    if role_rank(new_role) > role_rank(actor_role):
        raise AuthorizationError(
            message="You cannot assign a role above your own",
            role=new_role.value,
        )


def ensure_can_modify_member(
    actor_role: MembershipRole,
    target_role: MembershipRole,
    is_self: bool = False,
) -> None:
    """
    Guard for changing or removing an existing membership.

    - The owner's membership is immutable here
    - Admins cannot touch other admins; only the owner can
    - Nobody modifies a role above their own
    """
    if target_role == MembershipRole.OWNER:
        raise AuthorizationError(message="The organization owner cannot be modified or removed")
    if (
        actor_role == MembershipRole.ADMIN
        and target_role == MembershipRole.ADMIN
        and not is_self
    ):
        raise AuthorizationError(message="Admins cannot modify or remove other admins")
    if role_rank(target_role) > role_rank(actor_role):
        raise AuthorizationError(message="You cannot modify a member ranked above you")
