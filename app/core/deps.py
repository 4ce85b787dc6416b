"""
FastAPI dependencies for authentication and service wiring.

WHY: Dependencies provide reusable authentication logic and service
construction that can be injected into route handlers, and overridden
in tests (session factory, dispatcher, storage).
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import user_id_from_claims, verify_token
from app.core.exceptions import AuthenticationError
from app.dao.user import UserDAO
from app.db.session import get_db, get_session_factory
from app.models.user import User
from app.services.document_service import DocumentService
from app.services.membership_service import MembershipService
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from app.services.payment_order_service import PaymentOrderService
from app.services.profile_service import ProfileAccessService
from app.services.storage_service import StorageService, get_storage_service
from app.services.tag_service import TagService
from app.services.usage_limits import UsageLimitChecker, get_usage_limit_checker


# HTTP Bearer token security scheme
# WHY: auto_error=False so a missing header yields our 401 body, not FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from the identity provider's JWT.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Fetches user from database
    4. Ensures user still exists and is active

    Raises:
        AuthenticationError: If token is missing, invalid, expired, or user not found
    """
    if credentials is None:
        raise AuthenticationError(message="Missing bearer token")

    # TokenExpiredError / TokenInvalidError are AuthenticationError subclasses
    payload = verify_token(credentials.credentials)
    user_id = user_id_from_claims(payload)
    if user_id is None:
        raise AuthenticationError(message="Invalid token: missing user_id")

    # WHY: User data in token might be stale; always fetch current data
    user = await UserDAO(db).get_by_id(user_id)
    if not user:
        raise AuthenticationError(message="User not found", user_id=user_id)

    if not user.is_active:
        # WHY: Inactive users should not access the system
        raise AuthenticationError(message="User account is inactive", user_id=user_id)

    return user


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_storage() -> StorageService:
    return get_storage_service()


def get_usage_limits() -> UsageLimitChecker:
    return get_usage_limit_checker()


def get_payment_order_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    usage_limits: UsageLimitChecker = Depends(get_usage_limits),
) -> PaymentOrderService:
    return PaymentOrderService(session_factory, dispatcher, usage_limits)


def get_document_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    storage: StorageService = Depends(get_storage),
) -> DocumentService:
    return DocumentService(session_factory, dispatcher, storage)


def get_profile_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ProfileAccessService:
    return ProfileAccessService(session_factory)


def get_tag_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> TagService:
    return TagService(session_factory)


def get_membership_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> MembershipService:
    return MembershipService(session_factory)
