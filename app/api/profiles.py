"""
Profile access API endpoints.

1. GET /profiles/{profile_id}/access - Caller's access and role
2. PATCH /profiles/{profile_id}/allowed-emails - Edit the allow-list
"""

from fastapi import APIRouter, Depends

from app.core.deps import get_current_user, get_profile_service
from app.models.user import User
from app.schemas.profile import AccessCheckResponse, AllowedEmailsResponse, AllowedEmailsUpdate
from app.services.profile_service import ProfileAccessService


router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get(
    "/{profile_id}/access",
    response_model=AccessCheckResponse,
    summary="Check profile access",
)
async def check_profile_access(
    profile_id: int,
    current_user: User = Depends(get_current_user),
    service: ProfileAccessService = Depends(get_profile_service),
) -> AccessCheckResponse:
    access = (await service.check_access(current_user.id, profile_id)).unwrap()
    return AccessCheckResponse(
        profile_id=profile_id,
        has_access=access.has_access,
        role=access.role,
    )


@router.patch(
    "/{profile_id}/allowed-emails",
    response_model=AllowedEmailsResponse,
    summary="Update allowed emails",
)
async def update_allowed_emails(
    profile_id: int,
    body: AllowedEmailsUpdate,
    current_user: User = Depends(get_current_user),
    service: ProfileAccessService = Depends(get_profile_service),
) -> AllowedEmailsResponse:
    """
    Add, remove or replace allow-listed emails.

    WHY: Allow-listed users can submit orders without joining the
    organization; only the profile owner or organization admins manage
    the list.
    """
    result = await service.update_allowed_emails(
        current_user.id, profile_id, body.operation, body.emails
    )
    return AllowedEmailsResponse(profile_id=profile_id, allowed_emails=result.unwrap())
