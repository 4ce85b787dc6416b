"""
User model.

WHY: Users are supplied by the identity provider. We keep the display
fields needed to enrich orders, documents and history, and the email
used for profile allow-lists.
"""

from sqlalchemy import Column, String, Boolean

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing a person who submits or reviews payment orders.

    WHY: A user may belong to several organizations through memberships,
    or to none at all and reach a profile only through its allow-list.
    """

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    # WHY: Compared case-insensitively against profile allow-lists
    email = Column(String(255), unique=True, index=True, nullable=False)
    avatar_url = Column(String(1024), nullable=True)

    # Account status
    # WHY: is_active allows disabling access without losing authorship in history
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
