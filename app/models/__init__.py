"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin, utc_now
from app.models.user import User
from app.models.organization import (
    Organization,
    OrganizationMembership,
    MembershipRole,
    ROLE_RANK,
)
from app.models.profile import PaymentOrderProfile
from app.models.tag import Tag
from app.models.payment_order import PaymentOrder, PaymentOrderStatus, FINAL_STATUSES
from app.models.document import PaymentOrderDocument
from app.models.history import PaymentOrderHistory, HistoryAction
from app.models.order_event import (
    OrderEvent,
    OrderEventType,
    OrderEventStatus,
    NotificationType,
    STATUS_NOTIFICATIONS,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "utc_now",
    "User",
    "Organization",
    "OrganizationMembership",
    "MembershipRole",
    "ROLE_RANK",
    "PaymentOrderProfile",
    "Tag",
    "PaymentOrder",
    "PaymentOrderStatus",
    "FINAL_STATUSES",
    "PaymentOrderDocument",
    "PaymentOrderHistory",
    "HistoryAction",
    "OrderEvent",
    "OrderEventType",
    "OrderEventStatus",
    "NotificationType",
    "STATUS_NOTIFICATIONS",
]
