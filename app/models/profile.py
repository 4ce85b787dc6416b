"""
Payment order profile model.

WHAT: The submission endpoint within an organization that payment
orders are created against.

WHY: A profile carries the email allow-list that lets non-members
submit and follow their own orders.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, JSON, UniqueConstraint

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin


class PaymentOrderProfile(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Profile owned by one user and scoped to one organization.

    Fields:
    - organization_id: Tenant that reviews orders submitted here
    - owner_id: User with elevated access regardless of membership
    - allowed_emails: Lower-cased, de-duplicated allow-list
    """

    __tablename__ = "payment_order_profiles"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_profile_org_slug"),
    )

    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    # WHY: JSON list keeps the schema portable between PostgreSQL and SQLite
    allowed_emails = Column(JSON, nullable=False, default=list)

    def has_allowed_email(self, email: str) -> bool:
        return email.strip().lower() in (self.allowed_emails or [])

    def __repr__(self) -> str:
        return f"<PaymentOrderProfile(id={self.id}, slug={self.slug})>"
