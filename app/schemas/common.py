"""
Shared Pydantic schemas.

WHY: Orders, documents, history and members all embed the same small
user summary, read from the User row at response time.
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.models.user import User


class UserSummary(BaseModel):
    """Display info for a user embedded in other responses."""

    id: int = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    avatar_url: Optional[str] = Field(default=None, description="Avatar image URL")

    model_config = {"from_attributes": True}

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["UserSummary"]:
        return cls.model_validate(user) if user is not None else None
