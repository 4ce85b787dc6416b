"""
Tag model.

WHAT: A labeled category attachable to payment orders.

WHY: Tags optionally carry file requirements; an order tagged with
required files cannot be submitted until each required label has a
document.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, JSON, UniqueConstraint

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Tag(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Tag scoped to one profile.

    file_requirements format (ordered):
        [{"label": str, "description": str | None,
          "allowed_mime_types": [str], "max_file_size_mb": float | None,
          "required": bool}]
    """

    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("profile_id", "name", name="uq_tag_profile_name"),
    )

    profile_id = Column(
        Integer, ForeignKey("payment_order_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    color = Column(String(7), nullable=False)
    description = Column(Text, nullable=True)
    file_requirements = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name={self.name})>"
