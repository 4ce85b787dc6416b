"""
Profile Access Service.

WHAT: Reports a caller's access on a profile and manages the profile's
email allow-list.

WHY: The allow-list is how people outside the organization get to
submit payment orders. Only the profile owner and organization
owners/admins may change it, and entries are normalized so the
case-insensitive match in AccessResolver stays correct.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    LimitExceededError,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.result import as_result
from app.dao.profile import ProfileDAO
from app.db.unit_of_work import UnitOfWork
from app.services.access_resolver import AccessResolver

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ALLOWED_EMAIL_OPERATIONS = ("add", "remove", "set")


@dataclass(frozen=True)
class AccessCheck:
    has_access: bool
    role: Optional[str] = None


def normalize_emails(emails: Iterable[str]) -> List[str]:
    """
    Lower-case, trim and validate emails, preserving first-seen order.

    Raises:
        ValidationError: On the first malformed address
    """
    normalized: List[str] = []
    for raw in emails:
        email = (raw or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(message=f"Invalid email format: {email}", email=email)
        if email not in normalized:
            normalized.append(email)
    return normalized


def apply_email_operation(current: List[str], operation: str, emails: List[str]) -> List[str]:
    if operation == "add":
        merged = list(current)
        merged.extend(email for email in emails if email not in merged)
        return merged
    if operation == "remove":
        removed = set(emails)
        return [email for email in current if email not in removed]
    if operation == "set":
        return list(emails)
    raise ValidationError(
        message=f"Unknown operation: {operation}",
        allowed=list(ALLOWED_EMAIL_OPERATIONS),
    )


class ProfileAccessService:
    """Access checks and allow-list management for payment order profiles."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @as_result
    async def check_access(self, user_id: Optional[int], profile_id: int) -> AccessCheck:
        """
        Whether the caller can use the profile, and as what.

        Role is one of owner, admin, member, whitelisted, or None.
        """
        async with self.session_factory() as session:
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)
            resolver = AccessResolver(session)
            user = await resolver.find_caller(user_id)
            access = await resolver.resolve(user, profile)
            return AccessCheck(has_access=access.has_access, role=access.role_label)

    @as_result
    async def update_allowed_emails(
        self,
        user_id: Optional[int],
        profile_id: int,
        operation: str,
        emails: List[str],
    ) -> List[str]:
        """
        Add, remove or replace allow-listed emails.

        Returns:
            The stored allow-list

        Raises (converted to Err):
            ResourceNotFoundError: Unknown profile
            AuthenticationError: Unknown caller
            AuthorizationError: Caller is not the profile owner or an org owner/admin
            ValidationError: Malformed email or unknown operation
            LimitExceededError: More than MAX_ALLOWED_EMAILS entries
        """
        async with UnitOfWork(self.session_factory) as uow:
            session = uow.session
            profile = await ProfileDAO(session).get_for_update(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)

            resolver = AccessResolver(session)
            user = await resolver.load_caller(user_id)
            access = await resolver.resolve(user, profile)
            if not access.is_elevated:
                raise AuthorizationError(
                    message="Only the profile owner or organization admins can change allowed emails",
                    profile_id=profile_id,
                )

            normalized = normalize_emails(emails)
            updated = apply_email_operation(list(profile.allowed_emails or []), operation, normalized)
            if len(updated) > settings.MAX_ALLOWED_EMAILS:
                raise LimitExceededError(
                    message=f"Maximum {settings.MAX_ALLOWED_EMAILS} allowed emails permitted",
                    limit=settings.MAX_ALLOWED_EMAILS,
                )

            profile.allowed_emails = updated
            await session.flush()

        logger.info(
            f"Allowed emails of profile {profile_id} updated by user {user.id} "
            f"({operation}, {len(updated)} entries)"
        )
        return updated
