"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from app.dao.base import BaseDAO
from app.dao.user import UserDAO
from app.dao.organization import OrganizationDAO, MembershipDAO
from app.dao.profile import ProfileDAO, TagDAO
from app.dao.payment_order import PaymentOrderDAO
from app.dao.document import DocumentDAO
from app.dao.history import HistoryDAO
from app.dao.order_event import OrderEventDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "OrganizationDAO",
    "MembershipDAO",
    "ProfileDAO",
    "TagDAO",
    "PaymentOrderDAO",
    "DocumentDAO",
    "HistoryDAO",
    "OrderEventDAO",
]
