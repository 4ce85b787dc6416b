"""
Pydantic schemas for organization membership endpoints.

WHY: Schemas define request/response contracts for member management,
providing validation, documentation, and type safety.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.organization import MembershipRole
from app.schemas.common import UserSummary
from app.services.membership_service import MemberView


class MemberCreate(BaseModel):
    """
    Add an existing user to the organization.

    WHY: The owner role is rejected by the service; ownership is only
    set when the organization is created.
    """

    user_id: int = Field(..., description="User to add")
    role: MembershipRole = Field(default=MembershipRole.MEMBER, description="admin or member")

    class Config:
        json_schema_extra = {"example": {"user_id": 12, "role": "member"}}


class MemberRoleUpdate(BaseModel):
    role: MembershipRole = Field(..., description="New role (admin or member)")


class MemberResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    role: MembershipRole
    joined_at: datetime
    invited_by_id: Optional[int] = None
    user: Optional[UserSummary] = None

    @classmethod
    def from_view(cls, view: MemberView) -> "MemberResponse":
        membership = view.membership
        return cls(
            id=membership.id,
            organization_id=membership.organization_id,
            user_id=membership.user_id,
            role=membership.role,
            joined_at=membership.joined_at,
            invited_by_id=membership.invited_by_id,
            user=UserSummary.from_user(view.user),
        )
