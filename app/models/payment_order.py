"""
Payment order model.

WHAT: SQLAlchemy model representing a request for payment submitted
against a profile.

WHY: Payment orders move through a review workflow:
1. Submitted by a creator (member or allow-listed user)
2. Reviewed by the profile owner or organization admins
3. Paid and reconciled, or rejected / cancelled

HOW: Uses SQLAlchemy 2.0 with:
- Status enum driven only by the order state machine
- version_id counter so concurrent writers cannot overwrite each other
- No delete path; cancellation is a terminal status
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, FrozenSet

from sqlalchemy import (
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utc_now


class PaymentOrderStatus(str, Enum):
    """
    Payment order workflow status.

    - CREATED: Drafted by the creator, documents may still be missing
    - IN_REVIEW: Waiting for a reviewer decision
    - NEEDS_SUPPORT: Reviewer asked the creator for more information
    - APPROVED: Accepted, waiting for payment
    - PAID: Payment executed
    - RECONCILED: Payment matched in accounting (final)
    - REJECTED: Declined by a reviewer (final)
    - CANCELLED: Withdrawn (final)
    """

    CREATED = "CREATED"
    IN_REVIEW = "IN_REVIEW"
    NEEDS_SUPPORT = "NEEDS_SUPPORT"
    APPROVED = "APPROVED"
    PAID = "PAID"
    RECONCILED = "RECONCILED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Once reached, documents can no longer be added or removed
FINAL_STATUSES: FrozenSet[PaymentOrderStatus] = frozenset(
    {
        PaymentOrderStatus.RECONCILED,
        PaymentOrderStatus.REJECTED,
        PaymentOrderStatus.CANCELLED,
    }
)


# Shared by the order and history tables so PostgreSQL creates one enum type
PAYMENT_ORDER_STATUS_TYPE = SQLEnum(
    PaymentOrderStatus,
    name="paymentorderstatus",
    values_callable=lambda enum_cls: [e.value for e in enum_cls],
)


class PaymentOrder(Base):
    """
    Payment order submitted against a profile.

    Attributes:
        id: Primary key
        profile_id: Profile the order was submitted to
        created_by_id: Creator (immutable)
        title / description / reason: What is being paid and why
        amount: Strictly positive amount
        currency: ISO 4217 code, upper-cased
        status: Current workflow status
        tag_id: Optional tag (may carry file requirements)
        version_id: Optimistic concurrency counter
        created_at / updated_at: Timestamps
    """

    __tablename__ = "payment_orders"
    __table_args__ = (
        Index("ix_payment_orders_profile_status", "profile_id", "status"),
        CheckConstraint("amount > 0", name="ck_payment_orders_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_order_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[PaymentOrderStatus] = mapped_column(
        PAYMENT_ORDER_STATUS_TYPE,
        nullable=False,
        default=PaymentOrderStatus.CREATED,
        index=True,
    )

    tag_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # WHY: Every UPDATE checks and bumps this counter; a writer holding a
    # stale copy gets StaleDataError instead of silently overwriting.
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def __repr__(self) -> str:
        return f"<PaymentOrder(id={self.id}, status={self.status})>"
