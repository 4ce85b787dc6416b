"""
Tag Service.

WHAT: CRUD for profile tags and the file requirements they carry.

WHY: Tags decide which documents an order needs before it can be
submitted, so only the profile owner manages them. Requirement
definitions are validated on write so the gate can trust them on read.

HOW: Deleting a tag detaches it from every order instead of blocking;
those orders simply stop being gated.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import (
    AuthorizationError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.result import as_result
from app.dao.profile import ProfileDAO, TagDAO
from app.db.unit_of_work import UnitOfWork
from app.models.profile import PaymentOrderProfile
from app.models.tag import Tag
from app.models.user import User
from app.services.access_resolver import AccessResolver
from app.services.requirement_gate import validate_requirement_definitions

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
MAX_TAG_NAME_LENGTH = 100


@dataclass(frozen=True)
class TagDeletion:
    deleted_id: int
    orders_updated: int


def validate_color(color: str) -> str:
    if not color or not COLOR_PATTERN.match(color):
        raise ValidationError(message="Color must be in hex format (#RRGGBB)", color=color)
    return color


def validate_tag_name(name: str) -> str:
    clean = (name or "").strip()
    if not clean:
        raise ValidationError(message="Tag name cannot be empty")
    if len(clean) > MAX_TAG_NAME_LENGTH:
        raise ValidationError(
            message=f"Tag name cannot exceed {MAX_TAG_NAME_LENGTH} characters",
            name=clean,
        )
    return clean


def ensure_profile_owner(user: User, profile: PaymentOrderProfile) -> None:
    if user.id != profile.owner_id:
        raise AuthorizationError(
            message="Only the profile owner can manage tags",
            profile_id=profile.id,
        )


class TagService:
    """Tag management for payment order profiles."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @as_result
    async def create_tag(
        self,
        user_id: Optional[int],
        profile_id: int,
        name: str,
        color: str,
        description: Optional[str] = None,
        file_requirements: Optional[List[Dict[str, Any]]] = None,
    ) -> Tag:
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)
            user = await AccessResolver(session).load_caller(user_id)
            ensure_profile_owner(user, profile)

            clean_name = validate_tag_name(name)
            tag_dao = TagDAO(session)
            if await tag_dao.get_by_name(profile.id, clean_name):
                raise ResourceAlreadyExistsError(
                    message="A tag with this name already exists in this profile",
                    name=clean_name,
                )

            tag = await tag_dao.create(
                profile_id=profile.id,
                name=clean_name,
                color=validate_color(color),
                description=description,
                file_requirements=validate_requirement_definitions(file_requirements),
            )

        logger.info(f"Tag {tag.id} ({tag.name}) created on profile {profile_id}")
        return tag

    @as_result
    async def list_tags(self, user_id: Optional[int], profile_id: int) -> List[Tag]:
        """Tags of a profile by name; empty for callers without access."""
        async with self.session_factory() as session:
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)
            resolver = AccessResolver(session)
            access = await resolver.resolve(await resolver.find_caller(user_id), profile)
            if not access.has_access:
                return []
            return await TagDAO(session).list_for_profile(profile.id)

    @as_result
    async def update_tag(self, user_id: Optional[int], tag_id: int, **changes: Any) -> Tag:
        """
        Update name, color, description or file requirements.

        Changing requirements affects orders that are still CREATED the
        next time their readiness is evaluated.
        """
        allowed = {"name", "color", "description", "file_requirements"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(message="Unknown fields", fields=sorted(unknown))

        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            tag_dao = TagDAO(session)
            tag = await tag_dao.get_by_id(tag_id)
            if tag is None:
                raise ResourceNotFoundError(message="Tag not found", tag_id=tag_id)
            profile = await ProfileDAO(session).get_by_id(tag.profile_id)
            user = await AccessResolver(session).load_caller(user_id)
            ensure_profile_owner(user, profile)

            if "name" in changes:
                new_name = validate_tag_name(changes["name"])
                if new_name != tag.name and await tag_dao.get_by_name(tag.profile_id, new_name):
                    raise ResourceAlreadyExistsError(
                        message="A tag with this name already exists in this profile",
                        name=new_name,
                    )
                tag.name = new_name
            if "color" in changes:
                tag.color = validate_color(changes["color"])
            if "description" in changes:
                tag.description = changes["description"]
            if "file_requirements" in changes:
                tag.file_requirements = validate_requirement_definitions(changes["file_requirements"])
            await session.flush()

        logger.info(f"Tag {tag_id} updated: {sorted(changes)}")
        return tag

    @as_result
    async def delete_tag(self, user_id: Optional[int], tag_id: int) -> TagDeletion:
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            tag_dao = TagDAO(session)
            tag = await tag_dao.get_by_id(tag_id)
            if tag is None:
                raise ResourceNotFoundError(message="Tag not found", tag_id=tag_id)
            profile = await ProfileDAO(session).get_by_id(tag.profile_id)
            user = await AccessResolver(session).load_caller(user_id)
            ensure_profile_owner(user, profile)

            detached = await tag_dao.detach_from_orders(tag.id)
            await tag_dao.delete(tag.id)

        logger.info(f"Tag {tag_id} deleted, detached from {detached} orders")
        return TagDeletion(deleted_id=tag_id, orders_updated=detached)
