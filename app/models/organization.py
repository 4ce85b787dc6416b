"""
Organization and membership models.

WHY: Organizations are the tenants that own payment order profiles.
Memberships grant a user a role inside one organization; the role
decides whether the user may review orders or manage other members.
"""

import enum
from typing import Dict

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum as SQLEnum, UniqueConstraint

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin, utc_now


class MembershipRole(str, enum.Enum):
    """
    Role of a user within an organization.

    WHY: Closed enumeration; every permission check matches all variants
    through ROLE_RANK so a new role cannot fall through silently.
    """

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


ROLE_RANK: Dict[MembershipRole, int] = {
    MembershipRole.OWNER: 3,
    MembershipRole.ADMIN: 2,
    MembershipRole.MEMBER: 1,
}

if set(ROLE_RANK) != set(MembershipRole):
    raise RuntimeError("ROLE_RANK must rank every MembershipRole")


class Organization(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Organization model representing a tenant.

    The owner is fixed at creation; ownership transfer is a separate
    operation outside this service.
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name})>"


class OrganizationMembership(Base, PrimaryKeyMixin):
    """
    Membership of a user in an organization.

    WHY: One row per (organization, user); exactly one row per
    organization carries the OWNER role.
    """

    __tablename__ = "organization_memberships"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_membership_org_user"),
    )

    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # WHY: values_callable stores the lowercase value, not the enum name
    role = Column(
        SQLEnum(
            MembershipRole,
            name="membershiprole",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        nullable=False,
        default=MembershipRole.MEMBER,
    )
    invited_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    joined_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<OrganizationMembership(org={self.organization_id}, "
            f"user={self.user_id}, role={self.role})>"
        )
