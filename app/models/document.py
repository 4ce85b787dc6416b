"""
Payment order document model.

WHAT: Metadata for a file attached to a payment order.

WHY: File bytes live with the upload provider; we keep the key, url,
MIME type and size so requirement checks and deletions can be made
without touching the bytes.

HOW: One row per (order, requirement label). A new upload for a label
replaces the previous row.
"""

from datetime import datetime

from sqlalchemy import Integer, String, BigInteger, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utc_now


class PaymentOrderDocument(Base):
    """Document attached to a payment order under a requirement label."""

    __tablename__ = "payment_order_documents"
    __table_args__ = (
        UniqueConstraint(
            "payment_order_id", "requirement_label", name="uq_document_order_label"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("payment_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    requirement_label: Mapped[str] = mapped_column(String(255), nullable=False)

    # Storage metadata returned by the upload pipeline
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    def __repr__(self) -> str:
        return (
            f"<PaymentOrderDocument(id={self.id}, order={self.payment_order_id}, "
            f"label={self.requirement_label})>"
        )
