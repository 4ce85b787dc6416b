"""
Payment order history model.

WHAT: Append-only timeline of everything that happened to an order.

WHY: Reviewers and creators need a trustworthy record of who changed
what and when. Entries are:
- Immutable: ORM-level updates and deletes raise
- Complete: every state-changing operation writes one
- Ordered: created_at ascending, id as tie-breaker

HOW: user_id is NULL with is_system_actor=True for automatic
transitions. Display info for the actor is joined at read time and is
never stored on the row.
"""

import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Integer, Text, Boolean, DateTime, ForeignKey, JSON, Enum as SQLEnum, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.exceptions import HistoryImmutableError
from app.models.base import Base, utc_now
from app.models.payment_order import PAYMENT_ORDER_STATUS_TYPE, PaymentOrderStatus


class HistoryAction(str, enum.Enum):
    """Kinds of history entries."""

    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"
    DOCUMENT_REMOVED = "DOCUMENT_REMOVED"
    UPDATED = "UPDATED"
    COMMENT_ADDED = "COMMENT_ADDED"


class PaymentOrderHistory(Base):
    """Immutable history entry for a payment order."""

    __tablename__ = "payment_order_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("payment_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # WHY: NULL together with is_system_actor marks automatic transitions
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    is_system_actor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    action: Mapped[HistoryAction] = mapped_column(
        SQLEnum(
            HistoryAction,
            name="historyaction",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        nullable=False,
        index=True,
    )
    previous_status: Mapped[Optional[PaymentOrderStatus]] = mapped_column(
        PAYMENT_ORDER_STATUS_TYPE, nullable=True
    )
    new_status: Mapped[Optional[PaymentOrderStatus]] = mapped_column(
        PAYMENT_ORDER_STATUS_TYPE, nullable=True
    )
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # NOTE: Named 'extra_data' because 'metadata' is reserved by SQLAlchemy
    extra_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, index=True
    )

    def __repr__(self) -> str:
        return f"<PaymentOrderHistory(id={self.id}, action={self.action})>"


@event.listens_for(PaymentOrderHistory, "before_update")
def _reject_history_update(mapper, connection, target: PaymentOrderHistory) -> None:
    raise HistoryImmutableError(entry_id=target.id)


@event.listens_for(PaymentOrderHistory, "before_delete")
def _reject_history_delete(mapper, connection, target: PaymentOrderHistory) -> None:
    raise HistoryImmutableError(entry_id=target.id)


SYSTEM_ACTOR_NAME = "System"
SYSTEM_STATUS_COMMENT = "Auto-transitioned after document upload"

