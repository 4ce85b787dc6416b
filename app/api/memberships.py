"""
Organization membership API endpoints.

WHY: Organization roles decide who reviews payment orders:
1. GET /organizations/{org_id}/members - List members (members only)
2. POST /organizations/{org_id}/members - Add a member (admin+)
3. PATCH /organizations/{org_id}/members/{user_id} - Change a role (admin+)
4. DELETE /organizations/{org_id}/members/{user_id} - Remove a member (admin+)
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.core.deps import get_current_user, get_membership_service
from app.models.user import User
from app.schemas.organization import MemberCreate, MemberResponse, MemberRoleUpdate
from app.services.membership_service import MembershipService


router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get(
    "/{org_id}/members",
    response_model=List[MemberResponse],
    summary="List members",
)
async def list_members(
    org_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> List[MemberResponse]:
    """List members, highest role first. Non-members get an empty list."""
    views = (await service.list_members(current_user.id, org_id)).unwrap()
    return [MemberResponse.from_view(view) for view in views]


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add member",
)
async def add_member(
    org_id: int,
    body: MemberCreate,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> MemberResponse:
    """
    Add an existing user to the organization.

    Raises:
        ValidationError (400): Role is owner
        AuthorizationError (403): Caller is not admin or owner, or may not grant the role
        ResourceAlreadyExistsError (409): User is already a member
        ResourceNotFoundError (404): User does not exist
    """
    result = await service.add_member(current_user.id, org_id, body.user_id, body.role)
    return MemberResponse.from_view(result.unwrap())


@router.patch(
    "/{org_id}/members/{user_id}",
    response_model=MemberResponse,
    summary="Change member role",
)
async def update_member_role(
    org_id: int,
    user_id: int,
    body: MemberRoleUpdate,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> MemberResponse:
    result = await service.update_member_role(current_user.id, org_id, user_id, body.role)
    return MemberResponse.from_view(result.unwrap())


@router.delete(
    "/{org_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove member",
)
async def remove_member(
    org_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> Response:
    (await service.remove_member(current_user.id, org_id, user_id)).unwrap()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
