"""
Order event outbox model.

WHAT: Domain events written in the same transaction as the order change
that produced them.

WHY: Notification delivery must never block or roll back the workflow.
Persisting the event alongside the change guarantees it exists exactly
when the change committed; delivery happens afterwards and can be
retried.

HOW: The dispatcher marks rows delivered or failed; a scheduled job
picks up rows that are still pending.
"""

import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Integer, Text, DateTime, ForeignKey, JSON, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utc_now
from app.models.payment_order import PaymentOrderStatus


class OrderEventType(str, enum.Enum):
    """Events emitted after commit."""

    ORDER_CREATED = "ORDER_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"


class NotificationType(str, enum.Enum):
    """Outbound notification templates consumers may render."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_APPROVED = "ORDER_APPROVED"
    ORDER_REJECTED = "ORDER_REJECTED"
    ORDER_NEEDS_SUPPORT = "ORDER_NEEDS_SUPPORT"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"


# Status changes not listed here produce an event without a notification type
STATUS_NOTIFICATIONS: Dict[PaymentOrderStatus, NotificationType] = {
    PaymentOrderStatus.APPROVED: NotificationType.ORDER_APPROVED,
    PaymentOrderStatus.REJECTED: NotificationType.ORDER_REJECTED,
    PaymentOrderStatus.NEEDS_SUPPORT: NotificationType.ORDER_NEEDS_SUPPORT,
    PaymentOrderStatus.CANCELLED: NotificationType.ORDER_CANCELLED,
}


class OrderEventStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class OrderEvent(Base):
    """Outbox row for one domain event."""

    __tablename__ = "order_events"
    __table_args__ = (
        Index("ix_order_events_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("payment_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[OrderEventType] = mapped_column(
        SQLEnum(
            OrderEventType,
            name="ordereventtype",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        nullable=False,
    )
    # Format: {"actor_id", "previous_status", "new_status", "comment",
    #          "notification_type", "document_name", "profile_id", "title"}
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[OrderEventStatus] = mapped_column(
        SQLEnum(
            OrderEventStatus,
            name="ordereventstatus",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        nullable=False,
        default=OrderEventStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<OrderEvent(id={self.id}, type={self.event_type}, status={self.status})>"
