"""Database package"""

from app.db.session import AsyncSessionLocal, engine, get_db, get_session_factory
from app.db.unit_of_work import UnitOfWork, OrderLockRegistry, order_locks, retry_on_conflict
from app.models.base import Base

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "engine",
    "get_db",
    "get_session_factory",
    "UnitOfWork",
    "OrderLockRegistry",
    "order_locks",
    "retry_on_conflict",
]
