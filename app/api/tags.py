"""
Tag API endpoints.

WHY: Tags categorize orders and carry their file requirements. Only the
profile owner manages a profile's tags.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from app.core.deps import get_current_user, get_tag_service
from app.models.user import User
from app.schemas.tag import (
    TagCreate,
    TagDeleteResponse,
    TagResponse,
    TagUpdate,
    requirements_as_dicts,
)
from app.services.tag_service import TagService


router = APIRouter(tags=["tags"])


@router.post(
    "/profiles/{profile_id}/tags",
    response_model=TagResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create tag",
)
async def create_tag(
    profile_id: int,
    body: TagCreate,
    current_user: User = Depends(get_current_user),
    service: TagService = Depends(get_tag_service),
) -> TagResponse:
    result = await service.create_tag(
        current_user.id,
        profile_id,
        name=body.name,
        color=body.color,
        description=body.description,
        file_requirements=requirements_as_dicts(body.file_requirements),
    )
    return TagResponse.model_validate(result.unwrap())


@router.get(
    "/profiles/{profile_id}/tags",
    response_model=List[TagResponse],
    summary="List tags",
)
async def list_tags(
    profile_id: int,
    current_user: User = Depends(get_current_user),
    service: TagService = Depends(get_tag_service),
) -> List[TagResponse]:
    tags = (await service.list_tags(current_user.id, profile_id)).unwrap()
    return [TagResponse.model_validate(tag) for tag in tags]


@router.patch(
    "/tags/{tag_id}",
    response_model=TagResponse,
    summary="Update tag",
)
async def update_tag(
    tag_id: int,
    body: TagUpdate,
    current_user: User = Depends(get_current_user),
    service: TagService = Depends(get_tag_service),
) -> TagResponse:
    """
    Update a tag.

    WHY: model_dump(exclude_unset=True) distinguishes "not sent" from
    "set to null", so a client can clear the description explicitly.
    """
    changes = body.model_dump(exclude_unset=True)
    tag = (await service.update_tag(current_user.id, tag_id, **changes)).unwrap()
    return TagResponse.model_validate(tag)


@router.delete(
    "/tags/{tag_id}",
    response_model=TagDeleteResponse,
    summary="Delete tag",
)
async def delete_tag(
    tag_id: int,
    current_user: User = Depends(get_current_user),
    service: TagService = Depends(get_tag_service),
) -> TagDeleteResponse:
    """Delete a tag; orders carrying it keep existing without a tag."""
    deletion = (await service.delete_tag(current_user.id, tag_id)).unwrap()
    return TagDeleteResponse(deleted=deletion.deleted_id, orders_updated=deletion.orders_updated)
