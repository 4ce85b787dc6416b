"""
Usage limits.

WHAT: Decides whether an organization may create another payment order.

WHY: Plan quotas are owned by billing, which is outside this service.
Order creation only needs a yes/no answer before anything is written.

HOW: ``UsageLimitChecker`` allows everything. ``MonthlyOrderLimitChecker``
counts orders created this calendar month across the organization's
profiles against MONTHLY_ORDER_LIMIT.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.dao.payment_order import PaymentOrderDAO
from app.models.base import utc_now


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    remaining: Optional[int] = None
    limit: Optional[int] = None


class UsageLimitChecker:
    """Default checker: no quota."""

    async def check_order_limit(self, session: AsyncSession, organization_id: int) -> LimitDecision:
        return LimitDecision(allowed=True)


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class MonthlyOrderLimitChecker(UsageLimitChecker):
    """Caps orders created per organization per calendar month (UTC)."""

    def __init__(self, monthly_limit: int):
        if monthly_limit < 0:
            raise ValueError("monthly_limit must not be negative")
        self.monthly_limit = monthly_limit

    async def check_order_limit(self, session: AsyncSession, organization_id: int) -> LimitDecision:
        used = await PaymentOrderDAO(session).count_created_since(
            organization_id, start_of_month(utc_now())
        )
        remaining = max(self.monthly_limit - used, 0)
        return LimitDecision(
            allowed=used < self.monthly_limit,
            remaining=remaining,
            limit=self.monthly_limit,
        )


def get_usage_limit_checker() -> UsageLimitChecker:
    """Checker configured by MONTHLY_ORDER_LIMIT."""
    if settings.MONTHLY_ORDER_LIMIT is None:
        return UsageLimitChecker()
    return MonthlyOrderLimitChecker(settings.MONTHLY_ORDER_LIMIT)
