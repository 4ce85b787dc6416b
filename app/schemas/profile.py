"""
Pydantic schemas for profile access endpoints.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class AccessCheckResponse(BaseModel):
    """
    Caller's access on a profile.

    role: owner, admin, member, whitelisted, or null
    """

    profile_id: int
    has_access: bool
    role: Optional[str] = None


class AllowedEmailsUpdate(BaseModel):
    """
    Allow-list change.

    WHY: add/remove let the UI edit one entry at a time; set replaces
    the whole list (bulk import).
    """

    operation: Literal["add", "remove", "set"] = Field(..., description="How to apply emails")
    emails: List[str] = Field(..., description="Emails to add, remove or set")

    model_config = {
        "json_schema_extra": {
            "example": {"operation": "add", "emails": ["vendor@example.com"]}
        }
    }


class AllowedEmailsResponse(BaseModel):
    profile_id: int
    allowed_emails: List[str]
